"""
Subject line routing convention.

A subject qualifies for forwarding when it reads ``<keyword> - <target name>``.
The keyword is the shortest left segment before the first separating hyphen;
the target name is everything after it. The hyphen must have whitespace on at
least one side, so hyphenated words ("follow-up") are never split.
"""

import re
from typing import Tuple

SUBJECT_PATTERN = re.compile(r'^(.+?)(?:\s+-\s*|\s*-\s+)(.+)$', re.DOTALL)


def parse_subject(subject: str) -> Tuple[str, str]:
    """
    Split a subject into (keyword, target_name).

    Args:
        subject: Raw subject header

    Returns:
        Tuple of trimmed keyword and target name, both '' if the subject
        does not follow the convention

    Example:
        >>> parse_subject("紧急 - 客服部门")
        ('紧急', '客服部门')
        >>> parse_subject("no-delimiter-here")
        ('', '')
    """
    match = SUBJECT_PATTERN.match((subject or '').strip())
    if not match:
        return '', ''

    keyword = match.group(1).strip()
    target_name = match.group(2).strip()
    if not keyword or not target_name:
        return '', ''
    return keyword, target_name
