import unittest
from uuid import uuid4

from services.mention_parser import extract_mentions, format_mention, normalize_user_id


class MentionParserTests(unittest.TestCase):
    def setUp(self):
        self.user_a = str(uuid4())
        self.user_b = str(uuid4())

    def test_extracts_distinct_ids(self):
        content = f"hey <@{self.user_a}|Ann> and <@{self.user_b}|Ben>, also <@{self.user_a}|Ann again>"
        self.assertEqual(extract_mentions(content), {self.user_a, self.user_b})

    def test_extraction_is_idempotent(self):
        content = f"<@{self.user_a}|Ann> <@{self.user_a}|Ann>"
        self.assertEqual(extract_mentions(content), extract_mentions(content))
        self.assertEqual(len(extract_mentions(content)), 1)

    def test_author_is_not_a_mention(self):
        content = f"note to self <@{self.user_a}|Me> cc <@{self.user_b}|Ben>"
        self.assertEqual(extract_mentions(content, author_id=self.user_a), {self.user_b})

    def test_ids_are_normalized_to_lowercase(self):
        content = f"<@{self.user_a.upper()}|Ann>"
        self.assertEqual(extract_mentions(content), {self.user_a})

    def test_malformed_tokens_are_ignored(self):
        content = "<@not-a-uuid|Nobody> <@|Empty> <@1234|Short> plain @ann text"
        self.assertEqual(extract_mentions(content), set())

    def test_empty_content(self):
        self.assertEqual(extract_mentions(None), set())
        self.assertEqual(extract_mentions(""), set())

    def test_format_round_trip(self):
        token = format_mention(self.user_b, "Ben Smith")
        self.assertEqual(token, f"<@{self.user_b}|Ben Smith>")
        self.assertEqual(extract_mentions(token), {self.user_b})

    def test_normalize_user_id(self):
        self.assertEqual(normalize_user_id(f"  {self.user_a}  "), self.user_a)
        self.assertIsNone(normalize_user_id("abc"))
        self.assertIsNone(normalize_user_id(None))


if __name__ == "__main__":
    unittest.main()
