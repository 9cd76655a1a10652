import json
from typing import Optional, Dict

import chalice.app


def make_request(chalice_gateway, endpoint: str = '/', method: str = 'GET',
                 query: Optional[str] = None, json_body=None, token=None) -> Dict:
    """Request to an endpoint through the local gateway, authorizer included"""
    headers = {'Content-Type': 'application/json', 'Host': 'test-domain.com'}
    if token is not None:
        headers['Authorization'] = f'Bearer {token}'
    return chalice_gateway.handle_request(
        method=method,
        path=f"{endpoint}?{query}" if query else f"{endpoint}",
        headers=headers,
        body=json.dumps(json_body).encode('utf-8') if json_body is not None else b''
    )


def build_request(token=None, method: str = 'GET', path: str = '/', json_body=None, query_params=None):
    """Chalice request for calling endpoint functions directly, without the authorizer"""
    headers = {'content-type': 'application/json'}
    if token is not None:
        headers['authorization'] = f'Bearer {token}'
    return chalice.app.Request({
        'multiValueQueryStringParameters': {key: [value] for key, value in query_params.items()}
        if query_params else None,
        'headers': headers,
        'pathParameters': {},
        'requestContext': {'httpMethod': method, 'resourcePath': path},
        'body': json.dumps(json_body) if json_body is not None else '',
        'isBase64Encoded': False,
        'stageVariables': {}
    })
