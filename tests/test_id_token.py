from unittest import TestCase

from bson import ObjectId

from file_center.errors import InvalidToken
from file_center.security.id_token import TOKEN_LENGTH, IdTokenCodec


class IdTokenCodecTests(TestCase):
    def setUp(self):
        self.codec = IdTokenCodec("test-secret")

    def test_round_trip(self):
        for _ in range(50):
            oid = ObjectId()
            self.assertEqual(self.codec.decrypt(self.codec.encrypt(oid)), oid)

    def test_deterministic_and_url_safe(self):
        oid = ObjectId()
        token = self.codec.encrypt(oid)
        self.assertEqual(token, self.codec.encrypt(oid))
        self.assertEqual(len(token), TOKEN_LENGTH)
        self.assertRegex(token, r"^[A-Za-z0-9_-]+$")

    def test_token_hides_the_object_id(self):
        oid = ObjectId()
        self.assertNotIn(str(oid), self.codec.encrypt(oid))

    def test_encrypt_to_buffer_appends(self):
        oid = ObjectId()
        self.assertEqual(
            self.codec.encrypt_to_buffer(oid, "/files/"),
            "/files/" + self.codec.encrypt(oid),
        )

    def test_rejects_garbage(self):
        for token in ["", "abc", "!" * TOKEN_LENGTH, "a" * TOKEN_LENGTH, "a" * 100, str(ObjectId())]:
            with self.assertRaises(InvalidToken):
                self.codec.decrypt(token)

    def test_rejects_non_string(self):
        with self.assertRaises(InvalidToken):
            self.codec.decrypt(None)

    def test_rejects_tampered_token(self):
        token = self.codec.encrypt(ObjectId())
        flipped = ("B" if token[5] == "A" else "A")
        with self.assertRaises(InvalidToken):
            self.codec.decrypt(token[:5] + flipped + token[6:])

    def test_rejects_non_canonical_last_character(self):
        token = self.codec.encrypt(ObjectId())
        # the last base64 character carries 4 unused bits
        alphabet = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"
        idx = alphabet.index(token[-1])
        twin = token[:-1] + alphabet[idx ^ 1]
        with self.assertRaises(InvalidToken):
            self.codec.decrypt(twin)

    def test_other_key_fails_the_same_way(self):
        token = self.codec.encrypt(ObjectId())
        with self.assertRaises(InvalidToken):
            IdTokenCodec("another-secret").decrypt(token)

    def test_key_is_required(self):
        with self.assertRaises(ValueError):
            IdTokenCodec("")
