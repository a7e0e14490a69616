"""
Request-scoped table of custom certificate extensions.

An ExtensionRegistry maps friendly names to OIDs and OIDs to value shapes.
Shapes are small descriptors such as::

    {"type": "SEQUENCE", "children": {
        "cool": {"type": "BOOLEAN"},
        "level": {"type": "INTEGER"},
        "name": {"type": "UTF8String", "optional": True},
    }}

Values are encoded to DER with pyasn1 according to their shape. The ANY shape
carries an arbitrary JSON-compatible record inside a UTF8String.
"""
import json
import logging
from typing import Any, Dict, Iterable, Iterator, Optional

from cryptography import x509
from pyasn1.codec.der import decoder, encoder
from pyasn1.error import PyAsn1Error
from pyasn1.type import char, namedtype, univ

from .exceptions import DeclarationError, ExtensionDecodeError, ExtensionEncodeError
from .models import ExtensionDeclaration

BOOLEAN = "BOOLEAN"
INTEGER = "INTEGER"
UTF8_STRING = "UTF8String"
IA5_STRING = "IA5String"
PRINTABLE_STRING = "PrintableString"
OCTET_STRING = "OCTET STRING"
NULL = "NULL"
SEQUENCE = "SEQUENCE"
SEQUENCE_OF = "SEQUENCE OF"
ANY = "ANY"

_TYPE_NAMES = {
    "BOOLEAN": BOOLEAN,
    "INTEGER": INTEGER,
    "UTF8STRING": UTF8_STRING,
    "IA5STRING": IA5_STRING,
    "PRINTABLESTRING": PRINTABLE_STRING,
    "OCTETSTRING": OCTET_STRING,
    "NULL": NULL,
    "SEQUENCE": SEQUENCE,
    "SEQUENCEOF": SEQUENCE_OF,
    "ANY": ANY,
}

# Numeric type codes used by existing clients' declarations
_TYPE_CODES = {
    1: BOOLEAN,
    2: INTEGER,
    4: OCTET_STRING,
    5: NULL,
    12: UTF8_STRING,
    16: SEQUENCE,
    19: PRINTABLE_STRING,
    22: IA5_STRING,
    -1: ANY,
}

_STRING_TYPES = {
    UTF8_STRING: char.UTF8String,
    IA5_STRING: char.IA5String,
    PRINTABLE_STRING: char.PrintableString,
}


def _normalize_type(raw_type) -> str:
    if isinstance(raw_type, bool):
        raise DeclarationError(f"Invalid shape type: {raw_type!r}")
    if isinstance(raw_type, int):
        if raw_type not in _TYPE_CODES:
            raise DeclarationError(f"Unsupported shape type code: {raw_type}")
        return _TYPE_CODES[raw_type]
    if isinstance(raw_type, str):
        key = raw_type.upper().replace(" ", "").replace("_", "").replace("-", "")
        if key in _TYPE_NAMES:
            return _TYPE_NAMES[key]
    raise DeclarationError(f"Unsupported shape type: {raw_type!r}")


def normalize_shape(shape) -> Dict[str, Any]:
    """Validate a shape descriptor and return its canonical form."""
    if isinstance(shape, str):
        shape = {"type": shape}
    if not isinstance(shape, dict) or "type" not in shape:
        raise DeclarationError("Extension shape must be an object with a 'type'")

    kind = _normalize_type(shape["type"])
    if kind == SEQUENCE and ("min" in shape or "max" in shape):
        kind = SEQUENCE_OF

    normalized = {"type": kind}
    if shape.get("optional"):
        normalized["optional"] = True

    if kind == SEQUENCE:
        children = shape.get("children")
        if not isinstance(children, dict) or not children:
            raise DeclarationError("SEQUENCE shape requires named children")
        normalized["children"] = {
            str(name): normalize_shape(child) for name, child in children.items()
        }
    elif kind == SEQUENCE_OF:
        if "children" not in shape:
            raise DeclarationError("SEQUENCE OF shape requires a children shape")
        normalized["children"] = normalize_shape(shape["children"])

    return normalized


def _schema(shape):
    kind = shape["type"]
    if kind == BOOLEAN:
        return univ.Boolean()
    if kind == INTEGER:
        return univ.Integer()
    if kind in _STRING_TYPES:
        return _STRING_TYPES[kind]()
    if kind == OCTET_STRING:
        return univ.OctetString()
    if kind == NULL:
        return univ.Null()
    if kind == SEQUENCE:
        fields = []
        for name, child in shape["children"].items():
            field_type = namedtype.OptionalNamedType if child.get("optional") else namedtype.NamedType
            fields.append(field_type(name, _schema(child)))
        return univ.Sequence(componentType=namedtype.NamedTypes(*fields))
    if kind == SEQUENCE_OF:
        return univ.SequenceOf(componentType=_schema(shape["children"]))
    return char.UTF8String()


def _to_asn1(shape, value, path: str):
    kind = shape["type"]

    if kind == BOOLEAN:
        if not isinstance(value, bool):
            raise ExtensionEncodeError(f"{path}: expected a boolean, got {value!r}")
        return univ.Boolean(value)

    if kind == INTEGER:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ExtensionEncodeError(f"{path}: expected an integer, got {value!r}")
        return univ.Integer(value)

    if kind in _STRING_TYPES:
        if not isinstance(value, str):
            raise ExtensionEncodeError(f"{path}: expected a string, got {value!r}")
        try:
            return _STRING_TYPES[kind](value)
        except PyAsn1Error as e:
            raise ExtensionEncodeError(f"{path}: {e}")

    if kind == OCTET_STRING:
        if isinstance(value, (bytes, bytearray)):
            return univ.OctetString(bytes(value))
        try:
            return univ.OctetString(bytes.fromhex(value))
        except (TypeError, ValueError):
            raise ExtensionEncodeError(f"{path}: expected bytes or a hex string, got {value!r}")

    if kind == NULL:
        if value is not None:
            raise ExtensionEncodeError(f"{path}: expected null, got {value!r}")
        return univ.Null("")

    if kind == SEQUENCE:
        if not isinstance(value, dict):
            raise ExtensionEncodeError(f"{path}: expected an object, got {value!r}")
        children = shape["children"]
        unknown = set(value) - set(children)
        if unknown:
            raise ExtensionEncodeError(f"{path}: unexpected fields {sorted(unknown)}")
        sequence = _schema(shape)
        sequence.clear()
        for name, child in children.items():
            if name not in value or (value[name] is None and child["type"] != NULL):
                if child.get("optional"):
                    continue
                raise ExtensionEncodeError(f"{path}.{name}: missing required field")
            sequence.setComponentByName(
                name, _to_asn1(child, value[name], f"{path}.{name}"), verifyConstraints=False
            )
        return sequence

    if kind == SEQUENCE_OF:
        if not isinstance(value, (list, tuple)):
            raise ExtensionEncodeError(f"{path}: expected a list, got {value!r}")
        sequence_of = _schema(shape)
        sequence_of.clear()
        for position, item in enumerate(value):
            sequence_of.setComponentByPosition(
                position, _to_asn1(shape["children"], item, f"{path}[{position}]"), verifyConstraints=False
            )
        return sequence_of

    try:
        return char.UTF8String(json.dumps(value, separators=(",", ":")))
    except (TypeError, ValueError) as e:
        raise ExtensionEncodeError(f"{path}: value is not serializable: {e}")


def _to_native(shape, component):
    kind = shape["type"]
    if kind == BOOLEAN:
        return bool(component)
    if kind == INTEGER:
        return int(component)
    if kind in _STRING_TYPES:
        return str(component)
    if kind == OCTET_STRING:
        return component.asOctets().hex()
    if kind == NULL:
        return None
    if kind == SEQUENCE:
        result = {}
        for name, child in shape["children"].items():
            item = component.getComponentByName(name, instantiate=False)
            if item is univ.noValue or not item.isValue:
                continue
            result[name] = _to_native(child, item)
        return result
    if kind == SEQUENCE_OF:
        return [_to_native(shape["children"], item) for item in component]
    try:
        return json.loads(str(component))
    except ValueError as e:
        raise ExtensionDecodeError(f"ANY value is not a JSON document: {e}")


class ExtensionRegistry:
    """Name, OID and shape tables for custom extensions of one request."""

    def __init__(self, declarations: Optional[Iterable] = None):
        self.logger = logging.getLogger(__name__)
        self._oids: Dict[str, str] = {}
        self._names: Dict[str, str] = {}
        self._shapes: Dict[str, Dict[str, Any]] = {}
        if declarations:
            self.register(declarations)

    @staticmethod
    def parse_declaration(raw) -> ExtensionDeclaration:
        """
        Build an ExtensionDeclaration from a [name, oid, shape] triple or a
        {"name", "oid", "shape"} mapping.

        Raises:
            DeclarationError: If a part is missing or invalid
        """
        if isinstance(raw, ExtensionDeclaration):
            name, oid, shape = raw.name, raw.oid, raw.shape
        elif isinstance(raw, dict):
            name = raw.get("name")
            oid = raw.get("oid", raw.get("code"))
            shape = raw.get("shape")
        elif isinstance(raw, (list, tuple)) and len(raw) == 3:
            name, oid, shape = raw
        else:
            raise DeclarationError(f"Malformed extension declaration: {raw!r}")

        if not isinstance(name, str) or not name.strip():
            raise DeclarationError(f"Extension declaration is missing a name: {raw!r}")
        if not isinstance(oid, str) or not oid.strip():
            raise DeclarationError(f"Extension declaration '{name}' is missing an OID")
        try:
            x509.ObjectIdentifier(oid.strip())
        except ValueError:
            raise DeclarationError(f"Extension declaration '{name}' has an invalid OID: {oid}")
        if shape is None:
            raise DeclarationError(f"Extension declaration '{name}' is missing a shape")

        return ExtensionDeclaration(name=name.strip(), oid=oid.strip(), shape=normalize_shape(shape))

    def register(self, declarations: Iterable) -> None:
        """
        Register extension declarations.

        The whole batch is validated before anything is stored, so a
        malformed declaration leaves the registry untouched.
        """
        if isinstance(declarations, (ExtensionDeclaration, dict)):
            declarations = [declarations]
        if isinstance(declarations, (str, bytes)) or not isinstance(declarations, Iterable):
            raise DeclarationError("Extension declarations must be a list")

        parsed = [self.parse_declaration(raw) for raw in declarations]
        for declaration in parsed:
            self._oids[declaration.name] = declaration.oid
            self._names[declaration.oid] = declaration.name
            self._shapes[declaration.oid] = declaration.shape
            self.logger.debug(f"Registered extension {declaration.name} ({declaration.oid})")

    def copy(self) -> "ExtensionRegistry":
        clone = ExtensionRegistry()
        clone._oids = dict(self._oids)
        clone._names = dict(self._names)
        clone._shapes = dict(self._shapes)
        return clone

    def _dotted(self, identifier) -> Optional[str]:
        if isinstance(identifier, x509.ObjectIdentifier):
            return identifier.dotted_string
        if identifier in self._oids:
            return self._oids[identifier]
        try:
            return x509.ObjectIdentifier(str(identifier)).dotted_string
        except ValueError:
            return None

    def resolve_oid(self, identifier) -> x509.ObjectIdentifier:
        dotted = self._dotted(identifier)
        if dotted is None:
            raise ExtensionEncodeError(f"Unknown extension: {identifier}")
        return x509.ObjectIdentifier(dotted)

    def name_for(self, oid) -> Optional[str]:
        dotted = oid.dotted_string if isinstance(oid, x509.ObjectIdentifier) else str(oid)
        return self._names.get(dotted)

    def shape_for(self, identifier) -> Optional[Dict[str, Any]]:
        dotted = self._dotted(identifier)
        return self._shapes.get(dotted) if dotted else None

    def encode(self, identifier, value) -> bytes:
        """
        Encode an extension value to DER.

        Raises:
            ExtensionEncodeError: If no declaration covers the identifier, or
                the value does not fit its shape
        """
        shape = self.shape_for(identifier)
        if shape is None:
            raise ExtensionEncodeError(f"No declaration registered for extension {identifier}")
        try:
            return encoder.encode(_to_asn1(shape, value, str(identifier)))
        except PyAsn1Error as e:
            raise ExtensionEncodeError(f"Unable to encode extension {identifier}: {e}")

    def decode(self, identifier, der: bytes):
        """
        Decode DER extension content with its declared shape.

        Raises:
            ExtensionDecodeError: If the identifier is not registered or the
                content does not match the shape
        """
        shape = self.shape_for(identifier)
        if shape is None:
            raise ExtensionDecodeError(f"No declaration registered for extension {identifier}")
        try:
            component, remainder = decoder.decode(der, asn1Spec=_schema(shape))
        except PyAsn1Error as e:
            raise ExtensionDecodeError(f"Unable to decode extension {identifier}: {e}")
        if remainder:
            raise ExtensionDecodeError(f"Trailing data after extension {identifier}")
        return _to_native(shape, component)

    def to_extension(self, identifier, value) -> x509.UnrecognizedExtension:
        """Encode a value as an extension object for a certificate builder."""
        return x509.UnrecognizedExtension(self.resolve_oid(identifier), self.encode(identifier, value))

    def __contains__(self, identifier) -> bool:
        return self.shape_for(identifier) is not None

    def __len__(self) -> int:
        return len(self._shapes)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._oids))


def parse_declarations(raw) -> list:
    """
    Parse declarations given as JSON text or an already decoded list.

    Raises:
        DeclarationError: If the JSON is invalid or any declaration is malformed
    """
    if raw is None or raw == "":
        return []
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise DeclarationError(f"Extension declarations are not valid JSON: {e}")
    if not isinstance(raw, list):
        raise DeclarationError("Extension declarations must be a JSON list")
    return [ExtensionRegistry.parse_declaration(item) for item in raw]
