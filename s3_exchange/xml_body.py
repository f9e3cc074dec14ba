"""XML codec for S3 request and response documents.

Responses become nested dicts keyed by namespace-stripped tag names, ready
for pydantic validation in ``s3_models``. Request documents go the other
way, with the S3 namespace declared on the root.

Attributes are read as ``@name`` keys (ACL grantees carry ``xsi:type``) but
never written; no request document S3 defines needs them.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Any

S3_XML_NAMESPACE = "http://s3.amazonaws.com/doc/2006-03-01/"


def xml_to_dict(
    xml_bytes: bytes,
    force_list: set[str] | frozenset[str] = frozenset(),
) -> dict[str, Any]:
    """Parse *xml_bytes* into ``{root_tag: value}``.

    A child tag seen more than once becomes a list; so does any tag named in
    *force_list*, even when it occurs once. A leaf element becomes its
    stripped text, or None when it is empty.

    Raises:
        ET.ParseError: If *xml_bytes* is not well-formed XML.
    """
    root = ET.fromstring(xml_bytes)
    return {_local_name(root.tag): _convert(root, force_list)}


def _local_name(name: str) -> str:
    return name.rsplit("}", 1)[-1]


def _convert(element: ET.Element, force_list: set[str] | frozenset[str]) -> Any:
    result: dict[str, Any] = {
        f"@{_local_name(name)}": value for name, value in element.attrib.items()
    }

    for child in element:
        tag = _local_name(child.tag)
        value = _convert(child, force_list)
        if tag in result:
            if not isinstance(result[tag], list):
                result[tag] = [result[tag]]
            result[tag].append(value)
        elif tag in force_list:
            result[tag] = [value]
        else:
            result[tag] = value

    if result:
        return result
    return (element.text or "").strip() or None


def dict_to_xml(data: dict[str, Any], namespace: str | None = None) -> bytes:
    """Serialize ``{root_tag: value}`` as a UTF-8 document.

    Dicts become child elements, lists become repeated siblings, None an
    empty element and booleans ``true``/``false``.

    Raises:
        ValueError: If *data* is not a dict with exactly one key.
    """
    if not isinstance(data, dict) or len(data) != 1:
        raise ValueError("dict_to_xml expects a dict with exactly one top-level key")

    (tag, value), = data.items()
    root = _build(tag, value)
    if namespace:
        root.set("xmlns", namespace)
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def _build(tag: str, value: Any) -> ET.Element:
    element = ET.Element(tag)
    if isinstance(value, dict):
        for key, child in value.items():
            if key.startswith("@"):
                continue
            for item in child if isinstance(child, list) else [child]:
                element.append(_build(key, item))
    elif isinstance(value, bool):
        element.text = "true" if value else "false"
    elif value is not None:
        element.text = str(value)
    return element
