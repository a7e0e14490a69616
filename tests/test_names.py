"""
Tests for distinguished name conversion.
"""
import unittest

from cryptography import x509
from cryptography.x509.oid import NameOID

from x509sign.security.exceptions import CertificateDataError
from x509sign.security.names import attribute_oid, dict_to_name, name_to_dict

from certificate_fixtures import ISSUER_DN


class TestNames(unittest.TestCase):
    """Test cases for friendly DN mappings."""

    def test_mapping_round_trip(self):
        name = dict_to_name(ISSUER_DN)

        self.assertEqual(name.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value, "Dream Team")
        self.assertEqual(name_to_dict(name), ISSUER_DN)

    def test_attribute_aliases(self):
        self.assertEqual(attribute_oid("CN"), NameOID.COMMON_NAME)
        self.assertEqual(attribute_oid("id-at-organizationName"), NameOID.ORGANIZATION_NAME)
        self.assertEqual(attribute_oid("2.5.4.3"), NameOID.COMMON_NAME)
        with self.assertRaises(CertificateDataError):
            attribute_oid("favouriteColour")

    def test_repeated_attributes(self):
        name = dict_to_name({"organizationalUnitName": ["Ops", "Security"], "commonName": "Foo"})

        self.assertEqual(len(name.get_attributes_for_oid(NameOID.ORGANIZATIONAL_UNIT_NAME)), 2)
        self.assertEqual(name_to_dict(name)["organizationalUnitName"], ["Ops", "Security"])

    def test_rfc4514_string_and_name_objects(self):
        name = dict_to_name("CN=Bar,O=Example")
        self.assertEqual(name_to_dict(name), {"organizationName": "Example", "commonName": "Bar"})
        self.assertIs(dict_to_name(name), name)

    def test_invalid_names(self):
        with self.assertRaises(CertificateDataError):
            dict_to_name({})
        with self.assertRaises(CertificateDataError):
            dict_to_name(None)
        with self.assertRaises(CertificateDataError):
            dict_to_name({"countryName": "USA"})
        with self.assertRaises(CertificateDataError):
            dict_to_name({"commonName": None})
        with self.assertRaises(CertificateDataError):
            dict_to_name({"organizationalUnitName": ["Ops", None]})

    def test_unknown_oid_kept_dotted(self):
        name = x509.Name([x509.NameAttribute(x509.ObjectIdentifier("1.3.6.1.4.1.55555.9"), "x")])
        self.assertEqual(name_to_dict(name), {"1.3.6.1.4.1.55555.9": "x"})


if __name__ == '__main__':
    unittest.main()
