# api/error_handlers.py - JSON error responses
import logging
from werkzeug.exceptions import HTTPException
from . import api_bp
from .utils import error_response, ValidationError

logger = logging.getLogger(__name__)


@api_bp.errorhandler(ValidationError)
def validation_error(error):
    return error_response(str(error), 400)


@api_bp.app_errorhandler(404)
def not_found_error(error):
    return error_response('Recurso não encontrado', 404)


@api_bp.app_errorhandler(405)
def method_not_allowed_error(error):
    return error_response('Método não permitido', 405)


@api_bp.app_errorhandler(413)
def request_too_large_error(error):
    return error_response('Arquivo muito grande', 413)


@api_bp.app_errorhandler(500)
def internal_error(error):
    original = getattr(error, 'original_exception', None)
    if original is not None and not isinstance(original, HTTPException):
        logger.error(f"❌ Unhandled error: {original}")
    return error_response('Erro interno do servidor', 500)
