import json
import boto3
import os
import logging

logger = logging.getLogger()
logger.setLevel(logging.INFO)

codedeploy = boto3.client('codedeploy')
lambda_client = boto3.client('lambda')

HEALTH_EVENT = {
    'httpMethod': 'GET',
    'path': '/health',
    'queryStringParameters': None,
    'body': None
}


def _report(deployment_id, execution_id, status):
    codedeploy.put_lifecycle_event_hook_execution_status(
        deploymentId=deployment_id,
        lifecycleEventHookExecutionId=execution_id,
        status=status
    )


def lambda_handler(event, context):
    """
    Pre-traffic hook for CodeDeploy.
    Calls the new admin API version's health route before shifting traffic.
    """
    logger.info(f"Pre-traffic hook triggered: {json.dumps(event)}")

    deployment_id = event['DeploymentId']
    lifecycle_event_hook_execution_id = event['LifecycleEventHookExecutionId']

    try:
        target_function = os.environ.get('TARGET_FUNCTION')
        logger.info(f"Running smoke test on {target_function}")

        response = lambda_client.invoke(
            FunctionName=target_function,
            InvocationType='RequestResponse',
            Payload=json.dumps(HEALTH_EVENT)
        )

        response_payload = json.loads(response['Payload'].read())
        logger.info(f"Health response: {json.dumps(response_payload)}")

        if response.get('FunctionError'):
            raise Exception(f"Function returned error: {response_payload}")

        if response_payload.get('statusCode') != 200:
            raise Exception(f"Invalid response status: {response_payload.get('statusCode')}")

        body = json.loads(response_payload.get('body') or '{}')
        if body.get('status') != 'healthy':
            raise Exception(f"Unhealthy response: {body}")

        logger.info("Pre-traffic validation passed")
        _report(deployment_id, lifecycle_event_hook_execution_id, 'Succeeded')

        return {
            'statusCode': 200,
            'body': json.dumps('Pre-traffic validation succeeded')
        }

    except Exception as e:
        logger.error(f"Pre-traffic validation failed: {str(e)}", exc_info=True)

        # Reporting failure stops the deployment
        _report(deployment_id, lifecycle_event_hook_execution_id, 'Failed')

        return {
            'statusCode': 500,
            'body': json.dumps(f'Pre-traffic validation failed: {str(e)}')
        }
