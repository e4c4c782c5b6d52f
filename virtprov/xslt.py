"""Applying user XSLT stylesheets to generated XML definitions."""

from __future__ import annotations

import logging
from typing import Optional

from lxml import etree

logger = logging.getLogger(__name__)

IDENTITY_SPACE_STRIP_XSLT = """
<xsl:stylesheet version="1.0" xmlns:xsl="http://www.w3.org/1999/XSL/Transform">
  <xsl:strip-space elements="*" />
  <xsl:template match="@*|node()">
    <xsl:copy>
      <xsl:apply-templates select="@*|node()"/>
    </xsl:copy>
  </xsl:template>
</xsl:stylesheet>
"""

_ACCESS = etree.XSLTAccessControl(
    read_network=False,
    write_file=False,
    create_dir=False,
    write_network=False,
)


def _parser() -> etree.XMLParser:
    return etree.XMLParser(no_network=True)


def transform_xml(xml: str, xslt: str) -> str:
    """Apply ``xslt`` to ``xml``; an empty stylesheet returns ``xml`` unchanged.

    Raises ValueError when either document cannot be parsed or applied.
    """
    if not xslt.strip():
        return xml
    try:
        # Heredoc-style stylesheets may carry whitespace before the declaration.
        stylesheet = etree.fromstring(xslt.strip().encode("utf-8"), _parser())
        transform = etree.XSLT(stylesheet, access_control=_ACCESS)
        document = etree.fromstring(xml.encode("utf-8"), _parser())
        result = transform(document)
    except (etree.XMLSyntaxError, etree.XSLTError) as err:
        logger.error("Failed to apply XSLT stylesheet: %s", err)
        raise ValueError(f"could not apply XSLT: {err}") from err
    transformed = str(result)
    logger.debug("Transformed XML with user specified XSLT:\n%s", transformed)
    return transformed


def xslt_diff_suppress(key: str, old: str, new: str) -> bool:
    """Tell whether two stylesheets differ only in whitespace."""
    try:
        old_strip = transform_xml(old, IDENTITY_SPACE_STRIP_XSLT)
        new_strip = transform_xml(new, IDENTITY_SPACE_STRIP_XSLT)
    except ValueError:
        logger.error("Couldn't normalize XSLT stylesheet")
        return old == new
    return old_strip == new_strip


def transform_resource_xml(xml: str, xslt: Optional[str]) -> str:
    """Apply a resource's optional XSLT to its XML definition."""
    if not xslt:
        return xml
    return transform_xml(xml, xslt)