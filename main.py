"""
Entry point for the Users API server
"""

import sys
import os
import logging
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Add src directory to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from app import app
from config.settings import HOST, PORT

logger = logging.getLogger(__name__)

if __name__ == "__main__":
    import uvicorn
    logger.info(f"Server running on port {PORT}")
    logger.info(f"Health check: http://localhost:{PORT}/health")
    logger.info(f"API base: http://localhost:{PORT}/api")
    uvicorn.run(app, host=HOST, port=PORT)
