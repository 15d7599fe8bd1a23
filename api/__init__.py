# api/__init__.py - Blueprint registration and imports
import logging
from flask import Blueprint

logger = logging.getLogger(__name__)

# Create the main API blueprint
api_bp = Blueprint('api', __name__, url_prefix='/api')

# Import all route modules AFTER blueprint creation to avoid circular imports
from . import routes_main
from . import routes_auth
from . import routes_catalog
from . import routes_arts
from . import routes_popups
from . import routes_courses
from . import routes_social
from . import routes_users
from . import routes_logs
from . import routes_webhooks
from . import error_handlers

logger.debug("✅ API blueprint initialized")
