"""
Conversion between friendly distinguished name mappings and x509.Name.
"""
from typing import Any, Dict, Mapping

from cryptography import x509
from cryptography.x509.oid import NameOID

from .exceptions import CertificateDataError

NAME_ATTRIBUTES = {
    "countryName": NameOID.COUNTRY_NAME,
    "stateOrProvinceName": NameOID.STATE_OR_PROVINCE_NAME,
    "localityName": NameOID.LOCALITY_NAME,
    "organizationName": NameOID.ORGANIZATION_NAME,
    "organizationalUnitName": NameOID.ORGANIZATIONAL_UNIT_NAME,
    "commonName": NameOID.COMMON_NAME,
    "emailAddress": NameOID.EMAIL_ADDRESS,
    "serialNumber": NameOID.SERIAL_NUMBER,
    "surname": NameOID.SURNAME,
    "givenName": NameOID.GIVEN_NAME,
    "title": NameOID.TITLE,
    "pseudonym": NameOID.PSEUDONYM,
    "domainComponent": NameOID.DOMAIN_COMPONENT,
    "streetAddress": NameOID.STREET_ADDRESS,
    "postalCode": NameOID.POSTAL_CODE,
}

SHORT_NAMES = {
    "C": "countryName",
    "ST": "stateOrProvinceName",
    "L": "localityName",
    "O": "organizationName",
    "OU": "organizationalUnitName",
    "CN": "commonName",
    "DC": "domainComponent",
    "STREET": "streetAddress",
}

_FRIENDLY_BY_OID = {oid.dotted_string: name for name, oid in NAME_ATTRIBUTES.items()}


def attribute_oid(key: str) -> x509.ObjectIdentifier:
    """Resolve 'commonName', 'id-at-commonName', 'CN' or a dotted OID."""
    name = key[len("id-at-"):] if key.startswith("id-at-") else key
    name = SHORT_NAMES.get(name.upper(), name)
    if name in NAME_ATTRIBUTES:
        return NAME_ATTRIBUTES[name]
    try:
        return x509.ObjectIdentifier(name)
    except ValueError:
        raise CertificateDataError(f"Unknown distinguished name attribute: {key}")


def dict_to_name(dn) -> x509.Name:
    """
    Build an x509.Name from a friendly mapping.

    Values may be strings or lists of strings for repeated attributes. An
    RFC 4514 string is accepted as well.
    """
    if isinstance(dn, x509.Name):
        return dn
    if isinstance(dn, str):
        try:
            return x509.Name.from_rfc4514_string(dn)
        except ValueError as e:
            raise CertificateDataError(f"Invalid distinguished name '{dn}': {e}")
    if not isinstance(dn, Mapping) or not dn:
        raise CertificateDataError("Distinguished name must be a non-empty object")

    attributes = []
    for key, values in dn.items():
        oid = attribute_oid(str(key))
        if not isinstance(values, (list, tuple)):
            values = [values]
        for value in values:
            if value is None:
                raise CertificateDataError(f"Missing value for {key}")
            try:
                attributes.append(x509.NameAttribute(oid, str(value)))
            except ValueError as e:
                raise CertificateDataError(f"Invalid value for {key}: {e}")
    return x509.Name(attributes)


def name_to_dict(name: x509.Name) -> Dict[str, Any]:
    """Flatten an x509.Name to a friendly mapping, keeping attribute order."""
    result: Dict[str, Any] = {}
    for attribute in name:
        key = _FRIENDLY_BY_OID.get(attribute.oid.dotted_string, attribute.oid.dotted_string)
        if key in result:
            existing = result[key]
            result[key] = (existing if isinstance(existing, list) else [existing]) + [attribute.value]
        else:
            result[key] = attribute.value
    return result
