from mangum import Mangum
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rewards.api import build_reward_service, create_app
from rewards.config import get_settings
from rewards.logging_config import setup_logging

settings = get_settings()
setup_logging(settings.log_level, settings.log_json)

app = create_app(build_reward_service(settings), settings.cors_origin_list)

handler = Mangum(app)
