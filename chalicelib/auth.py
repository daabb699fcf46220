from typing import Dict, List

from chalice import AuthResponse, AuthRoute

from chalicelib.constants.constants import STUDENT, MANAGER, ADMIN, CATERER
from chalicelib.utils.auth import get_token_from_header, get_approved_user_record
from chalicelib.utils.exceptions import AuthorizationException, NotAuthorizedException
from chalicelib.utils.logger import logger

UUID_PATTERN = '????????-????-4???-????-????????????'

profile_routes = [
    AuthRoute(path='/api/users/me', methods=['GET', 'PUT'])
]

student_routes = [
    *profile_routes,
    AuthRoute(path='/api/student/menu', methods=['GET']),
    AuthRoute(path='/api/cart', methods=['GET', 'POST', 'DELETE']),
    AuthRoute(path='/api/orders', methods=['GET', 'POST']),
    AuthRoute(path=f'/api/orders/{UUID_PATTERN}', methods=['GET'])
]

manager_routes = [
    *profile_routes,
    AuthRoute(path='/api/admin/users', methods=['GET']),
    AuthRoute(path=f'/api/admin/users/{UUID_PATTERN}', methods=['PATCH']),
    AuthRoute(path='/api/admin/menu', methods=['GET', 'POST']),
    AuthRoute(path=f'/api/admin/menu/{UUID_PATTERN}', methods=['GET', 'PUT', 'DELETE']),
    AuthRoute(path='/api/admin/orders', methods=['GET']),
    AuthRoute(path=f'/api/admin/orders/{UUID_PATTERN}', methods=['GET', 'PATCH'])
]

admin_routes = [
    *manager_routes,
    AuthRoute(path='/api/admin/users', methods=['POST']),
    AuthRoute(path=f'/api/admin/orders/{UUID_PATTERN}', methods=['DELETE']),
    AuthRoute(path='/api/admin/universities', methods=['POST'])
]

caterer_routes = [
    *profile_routes,
    AuthRoute(path='/api/caterer/orders', methods=['GET']),
    AuthRoute(path=f'/api/caterer/orders/{UUID_PATTERN}/serve', methods=['POST']),
    AuthRoute(path='/api/caterer/scan', methods=['POST'])
]

role_routes: Dict[str, List[AuthRoute]] = {
    STUDENT: student_routes,
    MANAGER: manager_routes,
    ADMIN: admin_routes,
    CATERER: caterer_routes
}


def role_authorizer(auth_request):
    """
    Only APPROVED users get any routes, the set of routes depends on the user's role.
    """
    try:
        user_record = get_approved_user_record(get_token_from_header(auth_request.token))
    except (AuthorizationException, NotAuthorizedException) as error:
        logger.warning(f'role_authorizer ::: access denied, {error}')
        return AuthResponse(routes=[], principal_id='')
    role = user_record.get('role')
    return AuthResponse(
        routes=role_routes.get(role, []),
        principal_id=user_record['id_'],
        context={'role': role, 'university_id': user_record.get('university_id') or ''}
    )
