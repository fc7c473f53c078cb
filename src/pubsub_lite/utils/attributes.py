"""Message attribute helpers.

Attributes are a flat string-to-string mapping. Publishers merge their
configured defaults under the attributes given at the call site.
"""

from collections.abc import Mapping


def validate_attributes(attributes: Mapping[str, str]) -> dict[str, str]:
    """Check that every attribute key and value is a string.

    Args:
        attributes: Attributes to check

    Returns:
        A plain dict copy of the attributes

    Raises:
        TypeError: If a key or value is not a string

    Example:
        >>> validate_attributes({"source": "svc"})
        {'source': 'svc'}
    """
    result: dict[str, str] = {}
    for key, value in attributes.items():
        if not isinstance(key, str) or not isinstance(value, str):
            raise TypeError(
                f"Message attributes must map str to str, got {key!r}: {type(value).__name__}"
            )
        result[key] = value
    return result


def merge_attributes(
    defaults: Mapping[str, str] | None,
    call_site: Mapping[str, str] | None,
) -> dict[str, str]:
    """Merge call-site attributes over configured defaults.

    Call-site keys always win on conflict.

    Args:
        defaults: Attributes configured on the publisher
        call_site: Attributes passed to publish()

    Returns:
        The merged attributes

    Example:
        >>> merge_attributes({"source": "svc", "v": "1"}, {"source": "override"})
        {'source': 'override', 'v': '1'}
    """
    return {**(defaults or {}), **(call_site or {})}
