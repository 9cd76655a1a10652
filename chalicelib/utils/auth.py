import functools
from typing import Dict, Optional

from chalice.app import Request

from chalicelib.constants import keys_structure
from chalicelib.utils import exceptions as utils_exceptions, db as utils_db
from chalicelib.utils.logger import log_request, logger, set_request_id

BEARER_SCHEME = 'bearer'


def get_admin_id_from_token(token: Optional[str]) -> Optional[str]:
    """
    The console sends 'Bearer <admin id>', older clients send the bare id
    """
    if not token:
        return None
    parts = token.split()
    if parts and parts[0].lower() == BEARER_SCHEME:
        parts = parts[1:]
    return parts[0] if len(parts) == 1 else None


def get_admin_record(admin_id: str) -> Dict:
    return utils_db.get_db_item(
        partkey=keys_structure.admins_pk,
        sortkey=keys_structure.admins_sk.format(admin_id=admin_id)
    )


def _find_request(args) -> Request:
    for arg in args:
        if isinstance(arg, Request):
            return arg
    raise utils_exceptions.NotAuthorizedException('Request is not found in arguments of authenticated function')


def authenticate(func):
    """
    Wrapper for functions and class methods which require admin's authentication.
    The request is looked up among positional arguments, auth_result is set on it.
    """

    @functools.wraps(func)
    def result_auth(*args, **kwargs):
        request = _find_request(args)
        set_request_id(request)
        log_request(request)
        admin_id = get_admin_id_from_token(request.headers.get('authorization'))
        if not admin_id:
            raise utils_exceptions.NotAuthorizedException('Authorization header is missing')
        try:
            admin_record = get_admin_record(admin_id)
        except utils_exceptions.RecordNotFound:
            raise utils_exceptions.NotAuthorizedException(f'Admin {admin_id} is not found')
        if admin_record.get('is_active') is False:
            raise utils_exceptions.NotAuthorizedException(f'Admin {admin_id} is deactivated')
        setattr(request, 'auth_result', {
            'user_id': admin_id,
            'role': admin_record.get('role'),
            'email': admin_record.get('email')
        })
        result = func(*args, **kwargs)
        logger.info(f'authenticate ::: SUCCESS, func.__name__ {func.__name__}')
        return result

    return result_auth
