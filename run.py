import os
import sys
import logging
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Configure basic logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)

# Create app-specific logger
app_logger = logging.getLogger('pulsemetrics')

from pulsemetrics import create_app
from pulsemetrics.config import get_config

app = create_app()

# Log the degraded modes once at startup
get_config()

if __name__ == '__main__':
    app_logger.info("Starting Flask application...")
    app.run(host='0.0.0.0', port=int(os.environ.get('PORT', 8080)))
