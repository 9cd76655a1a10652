from chalice import AuthResponse, AuthRoute
from chalice.app import AuthRequest

from chalicelib.constants.constants import SUPER_ADMIN, SUB_ADMIN
from chalicelib.utils.auth import get_admin_id_from_token, get_admin_record
from chalicelib.utils.exceptions import RecordNotFound
from chalicelib.utils.logger import logger

ALL_METHODS = ['GET', 'POST', 'PUT', 'PATCH', 'DELETE']

SUB_ADMIN_ROUTES = [
    AuthRoute(path='/orders', methods=['GET']),
    AuthRoute(path='/orders/*', methods=['GET', 'POST', 'PATCH']),
    AuthRoute(path='/delivery-partners', methods=['GET']),
    AuthRoute(path='/delivery-partners/*', methods=['GET']),
    AuthRoute(path='/menu-items', methods=['GET', 'POST']),
    AuthRoute(path='/menu-items/*', methods=['GET', 'PUT']),
    AuthRoute(path='/menu-categories', methods=['GET', 'POST']),
    AuthRoute(path='/menu-categories/*', methods=['GET', 'PUT', 'POST']),
    AuthRoute(path='/promo-codes', methods=['GET']),
    AuthRoute(path='/promo-codes/*', methods=['GET']),
    AuthRoute(path='/promo-codes/evaluate', methods=['POST']),
    AuthRoute(path='/users/*', methods=['GET']),
    AuthRoute(path='/payments/*', methods=['GET']),
    AuthRoute(path='/notifications', methods=['GET', 'POST']),
    AuthRoute(path='/notifications/*', methods=['GET'])
]


def role_authorizer(auth_request: AuthRequest) -> AuthResponse:
    admin_id = get_admin_id_from_token(auth_request.token)
    if not admin_id:
        return AuthResponse(routes=[], principal_id='')
    try:
        admin_record = get_admin_record(admin_id)
    except RecordNotFound:
        logger.warning(f'role_authorizer ::: admin {admin_id} not found')
        return AuthResponse(routes=[], principal_id='')

    role = admin_record.get('role')
    if admin_record.get('is_active') is False:
        logger.warning(f'role_authorizer ::: admin {admin_id} is deactivated')
        return AuthResponse(routes=[], principal_id=admin_id)
    if role == SUPER_ADMIN:
        return AuthResponse(
            routes=[AuthRoute(path='/*', methods=ALL_METHODS)],
            principal_id=admin_id,
            context={'role': role}
        )
    elif role == SUB_ADMIN:
        return AuthResponse(routes=SUB_ADMIN_ROUTES, principal_id=admin_id, context={'role': role})
    else:
        logger.warning(f'role_authorizer ::: unknown role {role=} of admin {admin_id}')
        return AuthResponse(routes=[], principal_id=admin_id)
