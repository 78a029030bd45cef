"""String replacement engine for the edit_file tool.

Provides a single public function `replace()` that performs a literal,
single-occurrence substitution. This is not a structural patch: when
old_string occurs several times only the first occurrence is touched.
"""

from __future__ import annotations


def replace(content: str, old_string: str, new_string: str) -> str:
    """Replace the first occurrence of old_string with new_string in content.

    Raises ValueError:
      - "old_string must not be empty" if old_string is empty
      - "not found" if old_string does not occur verbatim in content

    Every byte outside the matched span is preserved.
    """
    if not old_string:
        raise ValueError("old_string must not be empty")

    index = content.find(old_string)
    if index < 0:
        raise ValueError("not found")

    return content[:index] + new_string + content[index + len(old_string) :]
