"""
Naming conventions for copy events.

There is no stored link between an original event and the copy created for it.
The relationship is recomputed every run from the copy's title prefix, its
description tag and the shared start/end times.
"""

DEFAULT_COPIED_PREFIX = '【△】'
DEFAULT_COPIED_DESC_PREFIX = '【copied event from '
DEFAULT_COPIED_DESC_SUFFIX = '】'


def copy_title(title, prefix=DEFAULT_COPIED_PREFIX):
    return prefix + title


def is_copy_title(title, prefix=DEFAULT_COPIED_PREFIX):
    return title.startswith(prefix)


def strip_copy_prefix(title, prefix=DEFAULT_COPIED_PREFIX):
    """Recover the original title from a copy title. Titles without the prefix are returned as-is."""
    if is_copy_title(title, prefix):
        return title[len(prefix):]
    return title


def copy_tag(source_id, desc_prefix=DEFAULT_COPIED_DESC_PREFIX, desc_suffix=DEFAULT_COPIED_DESC_SUFFIX):
    return f"{desc_prefix}{source_id}{desc_suffix}"


def copy_description(source_id, original_description,
                     desc_prefix=DEFAULT_COPIED_DESC_PREFIX, desc_suffix=DEFAULT_COPIED_DESC_SUFFIX):
    """
    Build the description a copy event must carry.

    Args:
        source_id (str): Calendar the copy was created on
        original_description (str): Description of the original event; None counts as empty
    """
    return copy_tag(source_id, desc_prefix, desc_suffix) + '\n' + (original_description or '')


def parse_copy_description(description, source_id,
                           desc_prefix=DEFAULT_COPIED_DESC_PREFIX, desc_suffix=DEFAULT_COPIED_DESC_SUFFIX):
    """Return the original description embedded after the tag, or None if the tag is missing."""
    if description is None:
        return None
    marker = copy_tag(source_id, desc_prefix, desc_suffix) + '\n'
    if not description.startswith(marker):
        return None
    return description[len(marker):]


def is_copy_of(candidate, original, prefix=DEFAULT_COPIED_PREFIX):
    """True when ``candidate`` is named and timed as the copy of ``original``."""
    return (
        candidate.title == copy_title(original.title, prefix)
        and candidate.start == original.start
        and candidate.end == original.end
    )
