"""
Tests for the CodeDeploy pre-traffic hook.
"""

import io
import json
import os
import pytest
from unittest.mock import patch

os.environ.setdefault('TARGET_FUNCTION', 'mail-router-admin-test')

import pre_traffic  # noqa: E402


@pytest.fixture
def hook_event():
    return {
        'DeploymentId': 'd-ABC123',
        'LifecycleEventHookExecutionId': 'exec-1',
    }


def _invoke_response(payload, function_error=None):
    response = {'StatusCode': 200, 'Payload': io.BytesIO(json.dumps(payload).encode('utf-8'))}
    if function_error:
        response['FunctionError'] = function_error
    return response


@pytest.fixture
def clients():
    with patch.object(pre_traffic, 'codedeploy') as codedeploy, \
            patch.object(pre_traffic, 'lambda_client') as lambda_client:
        yield codedeploy, lambda_client


def _reported_status(codedeploy):
    return codedeploy.put_lifecycle_event_hook_execution_status.call_args.kwargs['status']


def test_healthy_function_succeeds(clients, hook_event):
    codedeploy, lambda_client = clients
    lambda_client.invoke.return_value = _invoke_response({
        'statusCode': 200,
        'body': json.dumps({'status': 'healthy', 'environment': 'test'}),
    })

    response = pre_traffic.lambda_handler(hook_event, None)

    assert response['statusCode'] == 200
    assert _reported_status(codedeploy) == 'Succeeded'
    payload = json.loads(lambda_client.invoke.call_args.kwargs['Payload'])
    assert payload['path'] == '/health'


def test_function_error_fails_deployment(clients, hook_event):
    codedeploy, lambda_client = clients
    lambda_client.invoke.return_value = _invoke_response({'errorMessage': 'boom'}, function_error='Unhandled')

    response = pre_traffic.lambda_handler(hook_event, None)

    assert response['statusCode'] == 500
    assert _reported_status(codedeploy) == 'Failed'


def test_unhealthy_body_fails_deployment(clients, hook_event):
    codedeploy, lambda_client = clients
    lambda_client.invoke.return_value = _invoke_response({
        'statusCode': 200,
        'body': json.dumps({'status': 'degraded'}),
    })

    pre_traffic.lambda_handler(hook_event, None)

    assert _reported_status(codedeploy) == 'Failed'


def test_bad_status_code_fails_deployment(clients, hook_event):
    codedeploy, lambda_client = clients
    lambda_client.invoke.return_value = _invoke_response({'statusCode': 500, 'body': '{}'})

    pre_traffic.lambda_handler(hook_event, None)

    assert _reported_status(codedeploy) == 'Failed'
