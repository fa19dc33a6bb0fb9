"""
Helpers shared by the DynamoDB-backed stores.
"""

from typing import Any, Dict, List

from botocore.exceptions import ClientError


def scan_all(table: Any, filter_expression: Any) -> List[Dict[str, Any]]:
    """
    Run a filtered scan, following LastEvaluatedKey until the table is exhausted.

    Args:
        table: boto3 DynamoDB Table resource
        filter_expression: boto3 condition applied to every page

    Returns:
        List of matching items in scan order
    """
    items = []
    kwargs = {'FilterExpression': filter_expression}
    while True:
        response = table.scan(**kwargs)
        items.extend(response.get('Items', []))
        last_key = response.get('LastEvaluatedKey')
        if not last_key:
            return items
        kwargs['ExclusiveStartKey'] = last_key


def is_conditional_check_failure(error: ClientError) -> bool:
    return error.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException'
