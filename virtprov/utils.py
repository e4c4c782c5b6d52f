"""Small helpers shared across the provider: disk naming, retries and XML output."""

from __future__ import annotations

import copy
import logging
import string
import time
import xml.etree.ElementTree as ET
from typing import Callable

logger = logging.getLogger(__name__)

LIBVIRT_CONNECTION_IS_NONE = "the libvirt connection was nil"

WAIT_SLEEP_INTERVAL = 1.0
WAIT_TIMEOUT = 300.0

_DISK_LETTERS = string.ascii_lowercase

_XML_PREFIX = "  "
_XML_INDENT = "    "

_YES_NO = {True: "yes", False: "no"}


class WaitTimeoutError(TimeoutError):
    """Raised when an operation keeps failing past its deadline."""


def disk_letter_for_index(i: int) -> str:
    """Return the disk suffix for a zero-based index: 0 -> 'a', 26 -> 'aa'."""
    quotient, remainder = divmod(i, len(_DISK_LETTERS))
    letter = _DISK_LETTERS[remainder]
    if quotient == 0:
        return letter
    return disk_letter_for_index(quotient - 1) + letter


def wait_for_success(
    error_message: str,
    func: Callable[[], object],
    sleep_interval: float = WAIT_SLEEP_INTERVAL,
    timeout: float = WAIT_TIMEOUT,
) -> None:
    """Call ``func`` until it stops raising, or raise WaitTimeoutError after ``timeout``."""
    start = time.monotonic()
    while True:
        try:
            func()
        except Exception as err:  # noqa: BLE001 - any failure means retry
            logger.debug("%s. Re-trying.", err)
            time.sleep(sleep_interval)
            if time.monotonic() - start > timeout:
                raise WaitTimeoutError(f"{error_message}: {err}") from err
        else:
            return


def _indent(element: ET.Element, level: int) -> None:
    children = list(element)
    if not children:
        return
    inner = "\n" + _XML_PREFIX + _XML_INDENT * (level + 1)
    if not element.text or not element.text.strip():
        element.text = inner
    for child in children:
        _indent(child, level + 1)
        if not child.tail or not child.tail.strip():
            child.tail = inner
    last = children[-1]
    if not last.tail or not last.tail.strip():
        last.tail = "\n" + _XML_PREFIX + _XML_INDENT * level


def xml_marshal_indented(element: ET.Element) -> str:
    """Serialize an element with each line prefixed by two spaces and four-space indents."""
    if not ET.iselement(element):
        raise ValueError(f"could not marshall this:\n{element!r}")
    tree = copy.deepcopy(element)
    tree.tail = None
    _indent(tree, 0)
    body = ET.tostring(tree, encoding="unicode", short_empty_elements=False)
    return _XML_PREFIX + body


def format_bool_yes_no(value: bool) -> str:
    """Return 'yes' or 'no' for a boolean."""
    return _YES_NO[bool(value)]