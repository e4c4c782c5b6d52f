# virtprov

Building blocks for tools that provision virtual machines through a
hypervisor's XML interfaces. Everything here works on XML documents, files
and URLs; none of it needs a live hypervisor connection.

## Modules

- **Storage volume definitions** (`virtprov.volume_def`): `new_def_volume()`
  returns the default `StorageVolume` (qcow2 format, mode `644`, capacity of
  one byte); `volume_from_xml(text)` parses a `<volume>` document and raises
  `ValueError` for anything else; `StorageVolume.to_xml()` writes it back.
  The definition is made of the dataclasses `VolumeSize`, `VolumeFormat`,
  `VolumePermissions`, `VolumeTimestamps`, `VolumeTarget` and `BackingStore`.
  `time_from_epoch("123.456")` turns a `seconds.nanoseconds` timestamp into
  nanoseconds since the epoch; unparsable parts count as zero.
- **Disk images** (`virtprov.image`): `new_image(source)` returns an
  `HttpImage` for `http`/`https` URLs and a `LocalImage` for plain paths and
  `file://` URLs; any other scheme raises `ImageError`. Each image has
  `size()`, `is_qcow2()` (built on `is_qcow2_header`, which checks the
  8-byte qcow2 version 3 magic) and `import_image(copier, volume)`, which
  hands a readable binary stream to `copier`.
  - A local import is skipped when the volume's target modification time
    equals the file's.
  - A remote import sends `If-Modified-Since` from the volume's modification
    time, does nothing on `304`, copies on `200`, stops on other 4xx answers
    and retries server errors (5xx) up to `max_retries` times (3), waiting
    `retry_wait` seconds (2.0) between tries. Failures raise `ImageError`.
- **Host capabilities** (`virtprov.domain_def`): `parse_capabilities(text)`
  reads a capabilities document into `Capabilities`, `CapsGuest`,
  `CapsDomain` and `CapsMachine`. `get_guest_for_arch_type`,
  `get_canonical_machine_name` and `get_original_machine_name` map machine
  types in both directions (raising `CapabilityLookupError` when a guest or
  machine is missing), `lookup_machine` searches one machine list, and
  `get_host_architecture(capabilities_xml)` returns the host CPU architecture
  or `""`. `split_kernel_cmdline` splits a kernel command line into dicts,
  starting a new dict whenever a key repeats and gathering keyless arguments
  under `"_"`.
- **Networking** (`virtprov.net`): `random_mac_address()` gives a locally
  administered unicast address in the `52:54:00` range, `random_port()` a port
  in `[1024, 65535)`, `network_range(network)` the first and last address of
  a network (capped at 16 host bits, see `netmask_with_max_16_bits`).
  `FileWebServer` serves a fresh temporary directory over HTTP on
  `127.0.0.1`; use it as a context manager or call `start()`/`stop()`.
  `add_content(content)` returns the URL and path of a new file,
  `add_file(path)` symlinks an existing file and returns its URL.
- **XSLT** (`virtprov.xslt`): `transform_xml(xml, xslt)` applies a stylesheet
  with lxml, with network access and file writes denied; an empty stylesheet
  leaves the document untouched, and a document or stylesheet that cannot be
  parsed or applied raises `ValueError`. `transform_resource_xml(xml, xslt)`
  does the same for an optional stylesheet, and
  `xslt_diff_suppress(key, old, new)` tells whether two stylesheets differ
  only in whitespace.
- **Small helpers** (`virtprov.utils`): `disk_letter_for_index`
  (`0 → "a"`, `26 → "aa"`), `format_bool_yes_no`,
  `wait_for_success(error_message, func, sleep_interval, timeout)` (retries a
  callable until it stops raising, then raises `WaitTimeoutError`) and
  `xml_marshal_indented(element)` for indented output of an
  `xml.etree.ElementTree` element.

## Example

```python
from virtprov.domain_def import split_kernel_cmdline
from virtprov.image import new_image
from virtprov.utils import disk_letter_for_index
from virtprov.volume_def import new_def_volume

split_kernel_cmdline("foo=bar foo=bar key=val nosplash rw")
# [{"foo": "bar"}, {"foo": "bar", "key": "val"}, {"_": "nosplash rw"}]

disk_letter_for_index(300)   # "ko"

volume = new_def_volume()    # qcow2, mode 644, capacity 1 byte
print(volume.to_xml())

image = new_image("file:///var/lib/images/base.qcow2")
if image.is_qcow2():
    print(image, image.size())
```

## What it does not do

The package has no command-line program and does not connect to a
hypervisor: it does not look up, create, upload to or delete storage
volumes, pools or domains, and it does not report hypervisor or library
versions. Callers fetch capabilities and volume XML themselves and supply the
`copier` that writes image data into a volume.

## Requirements

Python 3.10 or newer, with `lxml` and `requests`. Install `virtprov[test]`
for the test suite, which runs with `pytest`.