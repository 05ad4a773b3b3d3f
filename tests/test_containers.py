"""
Unit tests for the PKCS#7, PKCS#12 and Java key store decoders.
"""
import unittest

from certscope import jceks, pkcs7, pkcs12
from certscope.errors import BadPassword, MalformedContainer, MalformedPkcs7
from certscope.passwords import PasswordResolver, constant, no_password

from certfactory import (EMPTY_PKCS7, JCE_ENCRYPTED_KEY, JCE_PLAIN_KEY, Hierarchy, jce_encrypted_key, jce_protect,
                         jks_protect, keystore, private_key_entry, record, secret_key_entry, to_der, to_pkcs7,
                         to_pkcs12, trusted_entry)


class RecordingResolver:
    """Resolver that remembers which aliases were asked for"""

    def __init__(self, passwords):
        self.passwords = passwords
        self.calls = []

    def __call__(self, alias):
        self.calls.append(alias)
        return self.passwords.get(alias, '')


class TestPkcs7(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.pki = Hierarchy()

    def test_extracts_single_certificate(self):
        certs = pkcs7.extract_certificates(to_pkcs7([self.pki.leaf]))
        self.assertEqual(certs, [record(self.pki.leaf)])

    def test_extracts_all_certificates(self):
        bundle = to_pkcs7([self.pki.leaf, self.pki.intermediate, self.pki.root])
        certs = pkcs7.extract_certificates(bundle)

        self.assertEqual(len(certs), 3)
        self.assertEqual({c.der for c in certs}, {c.der for c in self.pki.records})

    def test_empty_certificate_set(self):
        self.assertTrue(pkcs7.is_pkcs7(EMPTY_PKCS7))
        self.assertEqual(pkcs7.extract_certificates(EMPTY_PKCS7), [])

    def test_certificate_is_not_pkcs7(self):
        self.assertFalse(pkcs7.is_pkcs7(to_der(self.pki.leaf)))

    def test_wrong_content_type(self):
        # ContentInfo(data) instead of signedData
        envelope = bytes.fromhex('300b06092a864886f70d010701')
        with self.assertRaises(MalformedPkcs7):
            pkcs7.extract_certificates(envelope)

    def test_truncated_envelope(self):
        bundle = to_pkcs7([self.pki.leaf])
        with self.assertRaises(MalformedPkcs7):
            pkcs7.extract_certificates(bundle[:len(bundle) // 2])

    def test_malformed_is_a_container_error(self):
        self.assertTrue(issubclass(MalformedPkcs7, MalformedContainer))


class TestPkcs12(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.pki = Hierarchy()
        cls.data = to_pkcs12(cls.pki.leaf_key, cls.pki.leaf, [cls.pki.intermediate])

    def test_good_password(self):
        blocks = pkcs12.decode(self.data, constant('secret'))
        certs = [block.certificate for block in blocks]

        self.assertEqual(certs[0], record(self.pki.leaf))
        self.assertEqual(certs[1:], [record(self.pki.intermediate)])
        self.assertTrue(all(block.alias is None for block in blocks))

    def test_wrong_password(self):
        with self.assertRaises(BadPassword):
            pkcs12.decode(self.data, constant('wrong'))

    def test_container_password_asked_once(self):
        resolver = RecordingResolver({'': 'secret'})
        pkcs12.decode(self.data, resolver)
        self.assertEqual(resolver.calls, [''])

    def test_unencrypted_container(self):
        data = to_pkcs12(self.pki.leaf_key, self.pki.leaf, password=None)
        blocks = pkcs12.decode(data, no_password)
        self.assertEqual([b.certificate for b in blocks], [record(self.pki.leaf)])

    def test_structure_probe(self):
        self.assertTrue(pkcs12.looks_like_pkcs12(self.data))
        self.assertFalse(pkcs12.looks_like_pkcs12(to_der(self.pki.leaf)))
        self.assertFalse(pkcs12.looks_like_pkcs12(b'\x30\x00'))

    def test_garbage_is_malformed(self):
        with self.assertRaises(MalformedContainer):
            pkcs12.decode(b'\x30\x03\x02\x01\x03', constant('secret'))


class TestKeystore(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.pki = Hierarchy()
        cls.chain = [cls.pki.leaf, cls.pki.intermediate]

    def _jceks(self, key_password='keypass', store_password='storepass'):
        return keystore([
            trusted_entry('root', self.pki.root),
            private_key_entry('server', jce_protect(self.pki.leaf_key, key_password), self.chain),
        ], store_password)

    def test_detects_magic(self):
        self.assertTrue(jceks.is_keystore(self._jceks()))
        self.assertFalse(jceks.is_keystore(to_der(self.pki.leaf)))

    def test_jceks_entries_in_store_order(self):
        resolver = PasswordResolver(default='storepass', entries={'server': 'keypass'})
        blocks = jceks.decode(self._jceks(), resolver)

        self.assertEqual([b.alias for b in blocks], ['root', 'server', 'server'])
        self.assertEqual([b.certificate for b in blocks],
                         [record(self.pki.root), record(self.pki.leaf), record(self.pki.intermediate)])

    def test_store_password_requested_first(self):
        resolver = RecordingResolver({'': 'storepass', 'server': 'keypass'})
        jceks.decode(self._jceks(), resolver)
        self.assertEqual(resolver.calls, ['', 'server'])

    def test_wrong_store_password(self):
        with self.assertRaises(BadPassword):
            jceks.decode(self._jceks(), constant('nope'))

    def test_wrong_entry_password_names_alias(self):
        resolver = PasswordResolver(default='storepass', entries={'server': 'wrong'})
        with self.assertRaises(BadPassword) as ctx:
            jceks.decode(self._jceks(), resolver)

        self.assertEqual(ctx.exception.alias, 'server')
        self.assertIn('[server]', str(ctx.exception))

    def test_shared_password(self):
        data = self._jceks(key_password='changeit', store_password='changeit')
        self.assertEqual(len(jceks.decode(data, constant('changeit'))), 3)

    def test_equal_salt_halves(self):
        protected = jce_protect(self.pki.leaf_key, 'keypass', salt=b'\x01\x02\x03\x04' * 2)
        data = keystore([private_key_entry('server', protected, [self.pki.leaf])], 'storepass')
        resolver = PasswordResolver(default='storepass', entries={'server': 'keypass'})

        self.assertEqual(len(jceks.decode(data, resolver)), 1)

    def test_jks_store(self):
        data = keystore([
            private_key_entry('server', jks_protect(self.pki.leaf_key, 'keypass'), self.chain),
            trusted_entry('root', self.pki.root),
        ], 'storepass', magic=jceks.JKS_MAGIC)
        resolver = PasswordResolver(default='storepass', entries={'server': 'keypass'})
        blocks = jceks.decode(data, resolver)

        self.assertEqual([b.alias for b in blocks], ['server', 'server', 'root'])

    def test_jks_wrong_entry_password(self):
        data = keystore([private_key_entry('server', jks_protect(self.pki.leaf_key, 'keypass'), self.chain)],
                        'storepass', magic=jceks.JKS_MAGIC)
        resolver = PasswordResolver(default='storepass', entries={'server': 'bad'})
        with self.assertRaises(BadPassword):
            jceks.decode(data, resolver)

    def test_secret_key_entry_is_rejected(self):
        data = keystore([secret_key_entry('aes')], 'storepass')
        with self.assertRaises(MalformedContainer):
            jceks.decode(data, constant('storepass'))

    def test_truncated_store(self):
        data = self._jceks()
        with self.assertRaises(MalformedContainer):
            jceks.decode(data[:60], constant('storepass'))

    def test_derive_key_known_answer(self):
        key, iv = jceks.derive_jce_key('password', bytes.fromhex('aabbccdd11223344'), 5)

        self.assertEqual(key.hex(), '4029a5a4b044776cd870d587dac4cfa149a8c3a40f807f0b')
        self.assertEqual(iv.hex(), '7c36cc8cfbe49c86')

    def test_derive_key_known_answer_equal_salt_halves(self):
        # first half 01020304 is permuted to 04010204 before hashing
        key, iv = jceks.derive_jce_key('password', bytes.fromhex('0102030401020304'), 5)

        self.assertEqual(key.hex(), 'b8fd54445db8bdf38d65a2b6aa8726218724bb990ca01258')
        self.assertEqual(iv.hex(), '56347dacf33f0651')

    def test_decrypts_externally_encrypted_key(self):
        protected = jce_encrypted_key(JCE_ENCRYPTED_KEY, bytes.fromhex('aabbccdd11223344'), 5)

        self.assertEqual(jceks.recover_private_key(protected, 'password'), JCE_PLAIN_KEY)
        with self.assertRaises(BadPassword):
            jceks.recover_private_key(protected, 'passw0rd')

    def test_store_digest_known_answer(self):
        self.assertEqual(jceks.store_digest('changeit', b'body').hex(),
                         '0250011a8194bdaafe7f10aaa1fb6423959f0688')

    def test_derive_key_rejects_bad_salt(self):
        with self.assertRaises(MalformedContainer):
            jceks.derive_jce_key('password', b'short', 20)


if __name__ == '__main__':
    unittest.main()
