import codecs
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from lxml import etree

logger = logging.getLogger(__name__)

_XML_HEAD = re.compile(r"\ufeff?(?:<\?xml[^>]*\?>\s*)?")


@dataclass(frozen=True)
class StampOptions:
    set_release_notes: bool = False
    release_notes: Optional[str] = None
    source_version: Optional[str] = None
    dry_run: bool = False


def _write_if_changed(path, original, new_content, options):
    """Write new_content only when it differs byte-for-byte from original"""
    if new_content == original:
        logger.debug(f"'{path}' was not changed.")
        return False

    if options.dry_run:
        logger.info(f"Dry run - '{path}' would be changed.")
        return True

    logger.debug(f"Writing new contents to '{path}'...")
    Path(path).write_bytes(new_content)
    logger.debug(f"Finished writing new contents to '{path}'.")
    return True


# Assembly attribute files

def _assembly_attribute_pattern(name):
    return re.compile(
        rb'(\[\s*assembly\s*:\s*' + name.encode("ascii") + rb'(Attribute)?\s*\(\s*")(.*)("\s*\)\s*\])'
    )


_ASSEMBLY_ATTRIBUTES = {
    "AssemblyVersion": _assembly_attribute_pattern("AssemblyVersion"),
    "AssemblyFileVersion": _assembly_attribute_pattern("AssemblyFileVersion"),
    "AssemblyInformationalVersion": _assembly_attribute_pattern("AssemblyInformationalVersion"),
}


def stamp_assembly_info(path, version, options=StampOptions()):
    """Rewrite the first AssemblyVersion/FileVersion/InformationalVersion attribute of each kind"""
    logger.debug(f"Looking for version information to update in '{path}'...")
    original = Path(path).read_bytes()

    content = original
    for name, value in (
        ("AssemblyVersion", version.assembly_version),
        ("AssemblyFileVersion", version.assembly_file_version),
        ("AssemblyInformationalVersion", version.assembly_informational_version),
    ):
        payload = value.encode("utf-8")
        updated = _ASSEMBLY_ATTRIBUTES[name].sub(lambda m: m.group(1) + payload + m.group(4), content, count=1)
        if updated != content:
            logger.info(f"Set {name} to '{value}' in '{path}'")
        content = updated

    return _write_if_changed(path, original, content, options)


# XML manifests

def _local_path(*names):
    """Absolute XPath that matches each step by local name, ignoring namespaces"""
    return "".join(f"/*[local-name() = '{name}']" for name in names)


def _parse_xml(content):
    parser = etree.XMLParser(resolve_entities=False, no_network=True, strip_cdata=False)
    return etree.fromstring(content, parser).getroottree()


def _text_codec(original, declared):
    """Codec that decodes original without dropping its byte order mark"""
    if original.startswith(codecs.BOM_UTF16_LE):
        return "utf-16-le"
    if original.startswith(codecs.BOM_UTF16_BE):
        return "utf-16-be"
    return declared or "utf-8"


def _serialize_xml(tree, original):
    """
    Serialize tree, keeping the original declaration, BOM, line endings and
    trailing whitespace. lxml owns everything in between.
    """
    codec = _text_codec(original, tree.docinfo.encoding)
    text = original.decode(codec)
    head = _XML_HEAD.match(text).group(0)
    tail = text[len(text.rstrip()):]
    body = etree.tostring(tree, encoding="unicode").strip()
    # the parser normalizes line endings to \n
    if "\r\n" in text:
        body = body.replace("\n", "\r\n")
    return (head + body + tail).encode(codec, errors="xmlcharrefreplace")


def _set_text(element, value):
    for child in list(element):
        element.remove(child)
    element.text = value or ""


def _set_elements(tree, steps, value, path, description=None):
    for element in tree.xpath(_local_path(*steps)):
        _set_text(element, value)
        shown = description or f"'{value or ''}'"
        logger.info(f"Set /{'/'.join(steps)} to {shown} in '{path}'.")


def _set_attributes(tree, steps, attribute, value, path):
    for element in tree.xpath(_local_path(*steps)):
        if element.get(attribute) is not None:
            element.set(attribute, value or "")
            logger.info(f"Set /{'/'.join(steps)}/@{attribute} to '{value or ''}' in '{path}'.")


def _stamp_xml(path, options, edit):
    logger.debug(f"Looking for version information to update in '{path}'...")
    original = Path(path).read_bytes()
    tree = _parse_xml(original)
    edit(tree)
    return _write_if_changed(path, original, _serialize_xml(tree, original), options)


def stamp_csproj(path, version, options=StampOptions()):
    """Update every matching PropertyGroup child of an SDK-style project file"""
    def edit(tree):
        group = ("Project", "PropertyGroup")
        _set_elements(tree, group + ("Version",), version.assembly_informational_version, path)
        _set_elements(tree, group + ("VersionPrefix",), version.assembly_version, path)
        _set_elements(tree, group + ("VersionSuffix",), version.suffix, path)
        _set_elements(tree, group + ("FileVersion",), version.assembly_file_version, path)
        _set_elements(tree, group + ("PackageVersion",), version.assembly_informational_version, path)
        if options.set_release_notes:
            _set_elements(tree, group + ("PackageReleaseNotes",), options.release_notes, path,
                          description="the specified release notes")
        _set_elements(tree, group + ("RepositoryCommit",), options.source_version, path)

    return _stamp_xml(path, options, edit)


def stamp_nuspec(path, version, options=StampOptions()):
    def edit(tree):
        metadata = ("package", "metadata")
        _set_elements(tree, metadata + ("version",), version.assembly_informational_version, path)
        if options.set_release_notes:
            _set_elements(tree, metadata + ("releaseNotes",), options.release_notes, path,
                          description="the specified release notes")
        _set_attributes(tree, metadata + ("repository",), "commit", options.source_version, path)

    return _stamp_xml(path, options, edit)


def stamp_vsixmanifest(path, version, options=StampOptions()):
    def edit(tree):
        _set_attributes(tree, ("PackageManifest", "Metadata", "Identity"), "Version",
                        version.assembly_file_version, path)

    return _stamp_xml(path, options, edit)
