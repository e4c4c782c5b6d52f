"""Storage volume definitions: defaults, XML parsing and serialization."""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Optional, Type, TypeVar, Union

_INTEGER = re.compile(r"[+-]?[0-9]+")

_NANOS_PER_SECOND = 1_000_000_000


@dataclass
class VolumeSize:
    """A capacity or allocation value with its unit."""

    value: int
    unit: str = ""


@dataclass
class VolumeFormat:
    """The on-disk format of a volume, such as 'qcow2' or 'raw'."""

    type: str


@dataclass
class VolumePermissions:
    """Ownership and mode of a volume file."""

    mode: str = ""
    owner: str = ""
    group: str = ""
    label: str = ""


@dataclass
class VolumeTimestamps:
    """Access, modification and change times as 'seconds.nanoseconds' strings."""

    atime: str = ""
    mtime: str = ""
    ctime: str = ""


@dataclass
class VolumeTarget:
    """Where and how a volume is stored."""

    path: str = ""
    format: Optional[VolumeFormat] = None
    permissions: Optional[VolumePermissions] = None
    timestamps: Optional[VolumeTimestamps] = None


@dataclass
class BackingStore:
    """The base image a copy-on-write volume is layered on."""

    path: str = ""
    format: Optional[VolumeFormat] = None
    permissions: Optional[VolumePermissions] = None
    timestamps: Optional[VolumeTimestamps] = None


@dataclass
class StorageVolume:
    """A storage volume definition."""

    name: str = ""
    type: str = ""
    key: str = ""
    capacity: Optional[VolumeSize] = None
    allocation: Optional[VolumeSize] = None
    target: Optional[VolumeTarget] = None
    backing_store: Optional[BackingStore] = field(default=None)

    def to_xml(self) -> str:
        """Serialize the definition as a <volume> document."""
        root = ET.Element("volume")
        if self.type:
            root.set("type", self.type)
        _text_element(root, "name", self.name)
        _text_element(root, "key", self.key)
        if self.capacity is not None:
            _size_element(root, "capacity", self.capacity)
        if self.allocation is not None:
            _size_element(root, "allocation", self.allocation)
        if self.target is not None:
            _location_element(root, "target", self.target)
        if self.backing_store is not None:
            _location_element(root, "backingStore", self.backing_store)
        return ET.tostring(root, encoding="unicode")


def new_def_volume() -> StorageVolume:
    """Return the default definition: a qcow2 volume, mode 644, one byte."""
    return StorageVolume(
        target=VolumeTarget(
            format=VolumeFormat(type="qcow2"),
            permissions=VolumePermissions(mode="644"),
        ),
        capacity=VolumeSize(value=1, unit="bytes"),
    )


def volume_from_xml(text: str) -> StorageVolume:
    """Parse a <volume> document; raise ValueError if it is not one."""
    try:
        root = ET.fromstring(text)
    except ET.ParseError as err:
        raise ValueError(f"invalid volume XML: {err}") from err
    if root.tag != "volume":
        raise ValueError(f"expected element type <volume> but have <{root.tag}>")

    target = root.find("target")
    backing = root.find("backingStore")
    return StorageVolume(
        name=_child_text(root, "name"),
        type=root.get("type", ""),
        key=_child_text(root, "key"),
        capacity=_parse_size(root.find("capacity")),
        allocation=_parse_size(root.find("allocation")),
        target=None if target is None else _parse_location(target, VolumeTarget),
        backing_store=None if backing is None else _parse_location(backing, BackingStore),
    )


def time_from_epoch(text: str) -> int:
    """Convert a 'seconds[.nanoseconds]' string to nanoseconds since the epoch.

    Unparsable parts count as zero; the fraction is taken as a count of nanoseconds.
    """
    parts = text.split(".")
    nanos = _lenient_int(parts[1]) if len(parts) == 2 else 0
    seconds = _lenient_int(parts[0])
    return seconds * _NANOS_PER_SECOND + nanos


def _lenient_int(text: str) -> int:
    return int(text) if _INTEGER.fullmatch(text) else 0


def _child_text(parent: ET.Element, tag: str) -> str:
    return (parent.findtext(tag) or "").strip()


def _parse_size(element: Optional[ET.Element]) -> Optional[VolumeSize]:
    if element is None:
        return None
    raw = (element.text or "").strip()
    if not raw:
        value = 0
    elif raw.isascii() and raw.isdigit():
        value = int(raw)
    else:
        raise ValueError(f"invalid size value {raw!r} in <{element.tag}>")
    return VolumeSize(value=value, unit=element.get("unit", ""))


_Location = TypeVar("_Location", VolumeTarget, BackingStore)


def _parse_location(element: ET.Element, cls: Type[_Location]) -> _Location:
    fmt = element.find("format")
    perms = element.find("permissions")
    stamps = element.find("timestamps")
    return cls(
        path=_child_text(element, "path"),
        format=None if fmt is None else VolumeFormat(type=fmt.get("type", "")),
        permissions=None
        if perms is None
        else VolumePermissions(
            mode=_child_text(perms, "mode"),
            owner=_child_text(perms, "owner"),
            group=_child_text(perms, "group"),
            label=_child_text(perms, "label"),
        ),
        timestamps=None
        if stamps is None
        else VolumeTimestamps(
            atime=_child_text(stamps, "atime"),
            mtime=_child_text(stamps, "mtime"),
            ctime=_child_text(stamps, "ctime"),
        ),
    )


def _text_element(parent: ET.Element, tag: str, text: str) -> None:
    if text:
        ET.SubElement(parent, tag).text = text


def _size_element(parent: ET.Element, tag: str, size: VolumeSize) -> None:
    element = ET.SubElement(parent, tag)
    if size.unit:
        element.set("unit", size.unit)
    element.text = str(size.value)


def _location_element(
    parent: ET.Element, tag: str, location: Union[VolumeTarget, BackingStore]
) -> None:
    element = ET.SubElement(parent, tag)
    _text_element(element, "path", location.path)
    if location.format is not None:
        ET.SubElement(element, "format", type=location.format.type)
    if location.permissions is not None:
        perms = ET.SubElement(element, "permissions")
        _text_element(perms, "mode", location.permissions.mode)
        _text_element(perms, "owner", location.permissions.owner)
        _text_element(perms, "group", location.permissions.group)
        _text_element(perms, "label", location.permissions.label)
    if location.timestamps is not None:
        stamps = ET.SubElement(element, "timestamps")
        _text_element(stamps, "atime", location.timestamps.atime)
        _text_element(stamps, "mtime", location.timestamps.mtime)
        _text_element(stamps, "ctime", location.timestamps.ctime)