"""Host capability parsing and kernel command-line helpers for domain definitions."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Iterable, Optional

logger = logging.getLogger(__name__)


class CapabilityLookupError(LookupError):
    """Raised when a guest or machine type is missing from host capabilities."""


@dataclass
class CapsMachine:
    """A machine type offered for a guest architecture."""

    name: str
    canonical: str = ""


@dataclass
class CapsDomain:
    """A hypervisor domain type with its own machine list."""

    type: str
    machines: list[CapsMachine] = field(default_factory=list)


@dataclass
class CapsGuest:
    """A guest OS type and architecture the host can run."""

    os_type: str
    arch_name: str
    machines: list[CapsMachine] = field(default_factory=list)
    domains: list[CapsDomain] = field(default_factory=list)


@dataclass
class Capabilities:
    """The parts of the host capabilities document used by the provider."""

    host_uuid: str = ""
    host_arch: str = ""
    guests: list[CapsGuest] = field(default_factory=list)


def _machines(parent: ET.Element) -> list[CapsMachine]:
    return [
        CapsMachine(name=(m.text or "").strip(), canonical=m.get("canonical", ""))
        for m in parent.findall("machine")
    ]


def parse_capabilities(text: str) -> Capabilities:
    """Parse a host capabilities XML document."""
    try:
        root = ET.fromstring(text)
    except ET.ParseError as err:
        raise ValueError(f"invalid capabilities XML: {err}") from err
    if root.tag != "capabilities":
        raise ValueError(f"expected <capabilities> root element, got <{root.tag}>")

    guests = []
    for guest in root.findall("guest"):
        arch = guest.find("arch")
        if arch is None:
            arch = ET.Element("arch")
        guests.append(
            CapsGuest(
                os_type=(guest.findtext("os_type") or "").strip(),
                arch_name=arch.get("name", ""),
                machines=_machines(arch),
                domains=[
                    CapsDomain(type=d.get("type", ""), machines=_machines(d))
                    for d in arch.findall("domain")
                ],
            )
        )
    caps = Capabilities(
        host_uuid=(root.findtext("host/uuid") or "").strip(),
        host_arch=(root.findtext("host/cpu/arch") or "").strip(),
        guests=guests,
    )
    logger.debug("Capabilities of host %r", caps)
    return caps


def get_guest_for_arch_type(caps: Capabilities, arch: str, virttype: str) -> CapsGuest:
    """Return the guest entry matching an architecture and OS type."""
    for guest in caps.guests:
        logger.debug(
            "Checking for %s/%s against %s/%s", arch, virttype, guest.arch_name, guest.os_type
        )
        if guest.arch_name == arch and guest.os_type == virttype:
            logger.debug(
                "Found %d machines in guest for %s/%s", len(guest.machines), arch, virttype
            )
            return guest
    raise CapabilityLookupError(
        f"Could not find any guests for architecure type {virttype}/{arch}"
    )


def lookup_machine(machines: Iterable[CapsMachine], target_machine: str) -> Optional[str]:
    """Return the canonical (or own) name of the named machine, or None if absent."""
    for machine in machines:
        if machine.name == target_machine:
            return machine.canonical or machine.name
    return None


def get_canonical_machine_name(
    caps: Capabilities, arch: str, virttype: str, target_machine: str
) -> str:
    """Resolve a machine alias such as 'pc' to its canonical machine type."""
    guest = get_guest_for_arch_type(caps, arch, virttype)

    # Machines may be listed on the architecture and under each domain type.
    name = lookup_machine(guest.machines, target_machine)
    if name:
        return name
    for domain in guest.domains:
        name = lookup_machine(domain.machines, target_machine)
        if name:
            return name

    raise CapabilityLookupError(
        f"Cannot find machine type {target_machine} for {virttype}/{arch} in {caps!r}"
    )


def get_original_machine_name(
    caps: Capabilities, arch: str, virttype: str, target_machine: str
) -> str:
    """Map a canonical machine type back to the alias that points at it."""
    guest = get_guest_for_arch_type(caps, arch, virttype)
    for machine in guest.machines:
        if machine.canonical and machine.canonical == target_machine:
            return machine.name
    return target_machine


def split_kernel_cmdline(cmdline: str) -> list[dict[str, str]]:
    """Split a kernel command line into maps, starting a new map on each repeated key.

    Arguments without '=' are joined into a final map under the key '_'.
    """
    groups: list[dict[str, str]] = []
    if not cmdline:
        return groups

    current: dict[str, str] = {}
    keyless: list[str] = []
    for arg in cmdline.split(" "):
        if "=" not in arg:
            keyless.append(arg)
            continue
        key, value = arg.split("=", 1)
        if key in current:
            groups.append(current)
            current = {}
        current[key] = value

    if current:
        groups.append(current)
    if keyless:
        groups.append({"_": " ".join(keyless)})
    return groups


def get_host_architecture(capabilities_xml: str) -> str:
    """Return the host CPU architecture, or an empty string if it cannot be read."""
    try:
        return parse_capabilities(capabilities_xml).host_arch
    except ValueError:
        return ""