import functools
from typing import Callable

from chalice import Response

from chalicelib.constants import status_codes
from chalicelib.utils import exceptions
from chalicelib.utils.logger import logger, log_exception


def error_response(error: Exception, msg: str = "", status_code: int = 400, *args, **kwargs):
    log_exception(error=error, msg=msg, status_code=status_code, *args, **kwargs)
    return Response(
        body={
            'error': str(error),
            'exception': error.__class__.__name__,
            "message": str(msg),
            'error_id': getattr(logger, 'current_request_id', None),
            'level': getattr(error, 'LEVEL', 'exception')
        },
        status_code=status_code,
        headers={'Content-Type': 'application/json'}
    )


def request_exception_handler(func: Callable):
    @functools.wraps(func)
    def result(*args, **kwargs):
        try:
            logger.info(f'Calling function {func.__name__}')
            return func(*args, **kwargs)
        except (exceptions.ValidationException, exceptions.MandatoryFieldsAreNotFilled) as validation_error:
            return error_response(
                error=validation_error,
                msg=f'function = {func.__name__} , error = {validation_error}',
                status_code=status_codes.http400)
        except exceptions.NotAuthorizedException as not_authorized:
            return error_response(
                error=not_authorized,
                msg='Authorization is required',
                status_code=status_codes.http401)
        except exceptions.AccessDenied as access_denied:
            return error_response(
                error=access_denied,
                msg="You don't have permissions to access this resource",
                status_code=status_codes.http403)
        except exceptions.RecordNotFound as not_found:
            return error_response(
                error=not_found,
                msg=f'function = {func.__name__} , error = {not_found}',
                status_code=status_codes.http404)
        except (exceptions.InvalidStatusTransition, exceptions.OrderStatusConflict,
                exceptions.OrderNotAssignable, exceptions.PromoCodeAlreadyExists,
                exceptions.SubCategoryAlreadyExists, exceptions.NotificationNotCancellable) as conflict:
            return error_response(
                error=conflict,
                msg=f'function = {func.__name__} , error = {conflict}',
                status_code=status_codes.http409)
        except Exception as exception:
            return error_response(
                error=exception,
                msg=f'function = {func.__name__}, error = {exception}',
                status_code=status_codes.http500)
    return result


def log_start_finish(func: Callable):
    @functools.wraps(func)
    def result(*args, **kwargs):
        logger.info(f'{func.__name__} ::: started')
        response = func(*args, **kwargs)
        logger.info(f'{func.__name__} ::: finished')
        return response
    return result
