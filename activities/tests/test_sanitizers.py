# activities/tests/test_sanitizers.py
from django.test import SimpleTestCase

from activities.sanitizers import (
    sanitize_comment,
    sanitize_description,
    sanitize_media_type,
    sanitize_title,
)


class SanitizerTest(SimpleTestCase):
    def test_title_is_single_line_plain_text(self):
        self.assertEqual(sanitize_title("<b>Best</b>\n\nPaper   Award"), "Best Paper Award")
        self.assertEqual(len(sanitize_title("a" * 400)), 255)
        self.assertEqual(sanitize_title(None), "")

    def test_description_keeps_basic_markup(self):
        clean = sanitize_description('<p>Led the <strong>team</strong></p><img src=x onerror=alert(1)>')
        self.assertEqual(clean, "<p>Led the <strong>team</strong></p>")

    def test_comment_drops_control_characters(self):
        self.assertEqual(sanitize_comment("ok\x00\x07 then\tmore"), "ok then\tmore")

    def test_media_type(self):
        self.assertEqual(sanitize_media_type("Application/PDF; charset=binary"), "application/pdf")
        self.assertEqual(sanitize_media_type("../../etc"), "application/octet-stream")
        self.assertEqual(sanitize_media_type(None), "application/octet-stream")

    def test_nul_bytes_never_become_replacement_characters(self):
        self.assertEqual(sanitize_title("Best\x00 Paper"), "Best Paper")
        self.assertEqual(sanitize_comment("ok\x00\x07 then"), "ok then")
        self.assertNotIn("\ufffd", sanitize_description("<p>Led\x00 the team</p>"))
