"""
Unit tests for markup validation and transformation.

Every transformation test runs against both strategies (tag tree and
iterated regex).

Tests:
- Validation errors and warnings per profile
- Strip-all for plain-text engines (nested, same-name, malformed input)
- Selective removal for limited engines
- Root declaration injection for full engines
- Idempotence
"""

import unittest

from ttsbridge.core.capabilities import ALL_TAGS, CapabilityProfile, SupportLevel, resolve
from ttsbridge.core.errors import CapabilityMismatchWarning
from ttsbridge.core.markup import parser
from ttsbridge.core.markup.compatibility import MarkupProcessor, root_attributes, strip_markup

NONE_PROFILE = CapabilityProfile(False, SupportLevel.NONE, unsupported_tags=frozenset({ALL_TAGS}))
EMPHASIS_LIMITED = CapabilityProfile(True, SupportLevel.LIMITED, unsupported_tags=frozenset({"emphasis"}))
FULL_PROFILE = CapabilityProfile(True, SupportLevel.FULL)
FULL_DECLARED = CapabilityProfile(True, SupportLevel.FULL, requires_namespace=True, requires_version=True)

NAMESPACE = "http://www.w3.org/2001/10/synthesis"

SAMPLE_DOCS = [
    '<speak>Hello <break time="500ms"/> world!</speak>',
    "<speak><emphasis><prosody>text</prosody></emphasis></speak>",
    '<speak><prosody rate="fast">hi</prosody><emphasis>x</emphasis></speak>',
    "<speak><p><s>One.</s><s>Two.</s></p><p>Three.</p></speak>",
    '<?xml version="1.0"?><speak><!-- note -->Hi <say-as interpret-as="digits">123</say-as></speak>',
    "<speak><emphasis>a <emphasis>b <emphasis>c</emphasis></emphasis> d</emphasis></speak>",
    '<speak xmlns="http://www.w3.org/2001/10/synthesis" version="1.0"><voice name="x">v</voice></speak>',
]


class StrategyMixin:
    strategy = "tree"

    def setUp(self):
        self.processor = MarkupProcessor(self.strategy)


class TransformTests(StrategyMixin):

    # --- strip-all ---------------------------------------------------------

    def test_scenario_break_becomes_single_space(self):
        result = self.processor.transform('<speak>Hello <break time="500ms"/> world!</speak>', NONE_PROFILE)
        self.assertEqual(result, "Hello world!")

    def test_total_strip_leaves_no_tags(self):
        docs = SAMPLE_DOCS + [
            "<speak>a < b <prosody>c</speak>",
            '<speak>unterminated <prosody rate="fast" hello</speak>',
            "<speak>stray</emphasis> close</speak>",
            "<speak>x<mark name='m1'/>y</speak>",
        ]
        for doc in docs:
            with self.subTest(doc=doc):
                self.assertNotIn("<", self.processor.transform(doc, NONE_PROFILE))

    def test_nested_strip(self):
        self.assertEqual(
            self.processor.transform("<emphasis><prosody>text</prosody></emphasis>", NONE_PROFILE),
            "text",
        )

    def test_same_name_nesting_strip(self):
        doc = "<speak><emphasis>a <emphasis>b <emphasis>c</emphasis></emphasis> d</emphasis></speak>"
        self.assertEqual(self.processor.transform(doc, NONE_PROFILE), "a b c d")

    def test_block_tags_separate_words(self):
        doc = "<speak><p><s>One.</s><s>Two.</s></p><p>Three.</p></speak>"
        self.assertEqual(self.processor.transform(doc, NONE_PROFILE), "One. Two. Three.")

    def test_comments_and_declarations_removed(self):
        doc = '<?xml version="1.0"?><speak><!-- note -->Hi <say-as interpret-as="digits">123</say-as></speak>'
        self.assertEqual(self.processor.transform(doc, NONE_PROFILE), "Hi 123")

    def test_wildcard_on_markup_engine_strips_everything(self):
        profile = resolve("google", "en-US-Journey-F")
        self.assertEqual(
            self.processor.transform('<speak><prosody rate="slow">Slow</prosody> down</speak>', profile),
            "Slow down",
        )

    # --- limited -----------------------------------------------------------

    def test_selective_strip(self):
        result = self.processor.transform(
            '<speak><prosody rate="fast">hi</prosody><emphasis>x</emphasis></speak>',
            EMPHASIS_LIMITED,
        )
        self.assertIn("<prosody", result)
        self.assertNotIn("<emphasis", result)
        self.assertEqual(result, '<speak><prosody rate="fast">hi</prosody>x</speak>')

    def test_unlisted_tags_kept_byte_for_byte(self):
        doc = "<speak><prosody rate='fast' >hi</prosody><emphasis level=\"strong\">x</emphasis></speak>"
        self.assertEqual(
            self.processor.transform(doc, EMPHASIS_LIMITED),
            "<speak><prosody rate='fast' >hi</prosody>x</speak>",
        )

    def test_limited_nested_same_tag(self):
        doc = "<speak><emphasis>a <emphasis>b</emphasis></emphasis></speak>"
        self.assertEqual(self.processor.transform(doc, EMPHASIS_LIMITED), "<speak>a b</speak>")

    def test_limited_listed_break_becomes_space(self):
        profile = CapabilityProfile(True, SupportLevel.LIMITED, unsupported_tags=frozenset({"break"}))
        self.assertEqual(
            self.processor.transform('<speak>a<break time="1s"/>b</speak>', profile),
            "<speak>a b</speak>",
        )

    def test_limited_does_not_touch_prefix_sharing_tags(self):
        profile = CapabilityProfile(True, SupportLevel.LIMITED, unsupported_tags=frozenset({"s"}))
        doc = "<speak><s>one</s><say-as interpret-as='digits'>12</say-as><sub alias='x'>y</sub></speak>"
        self.assertEqual(
            self.processor.transform(doc, profile),
            "<speak>one<say-as interpret-as='digits'>12</say-as><sub alias='x'>y</sub></speak>",
        )

    def test_limited_profile_gets_declarations(self):
        result = self.processor.transform("<speak><emphasis>x</emphasis></speak>", resolve("polly", "Joanna-Neural"))
        self.assertEqual(result, f'<speak xmlns="{NAMESPACE}">x</speak>')

    # --- full --------------------------------------------------------------

    def test_full_structure_untouched(self):
        doc = '<speak><prosody rate="fast">hi</prosody><emphasis>x</emphasis></speak>'
        self.assertEqual(self.processor.transform(doc, FULL_PROFILE), doc)

    def test_full_injects_declarations(self):
        result = self.processor.transform("<speak>Hi</speak>", FULL_DECLARED)

        self.assertEqual(result, f'<speak version="1.0" xmlns="{NAMESPACE}">Hi</speak>')
        attributes = root_attributes(result)
        self.assertEqual(attributes["xmlns"], NAMESPACE)
        self.assertEqual(attributes["version"], "1.0")

    def test_full_does_not_duplicate_declarations(self):
        doc = f'<speak version="1.0" xmlns="{NAMESPACE}">Hi</speak>'
        result = self.processor.transform(doc, FULL_DECLARED)

        self.assertEqual(result, doc)
        self.assertEqual(result.count("xmlns="), 1)
        self.assertEqual(result.count("version="), 1)

    def test_declarations_only_on_root(self):
        doc = '<speak><voice name="a">x</voice></speak>'
        result = self.processor.transform(doc, FULL_DECLARED)
        self.assertIn('<voice name="a">', result)

    def test_quoted_angle_bracket_in_root(self):
        doc = '<speak a=">">t</speak>'

        self.assertEqual(self.processor.transform(doc, NONE_PROFILE), "t")

        result = self.processor.transform(doc, FULL_DECLARED)
        self.assertEqual(result, f'<speak version="1.0" a=">" xmlns="{NAMESPACE}">t</speak>')
        self.assertEqual(self.processor.transform(result, FULL_DECLARED), result)

    def test_quoted_angle_bracket_in_limited(self):
        doc = '<speak><sub alias="a > b"><emphasis>x</emphasis></sub></speak>'
        self.assertEqual(
            self.processor.transform(doc, EMPHASIS_LIMITED),
            '<speak><sub alias="a > b">x</sub></speak>',
        )

    # --- idempotence -------------------------------------------------------

    def test_transform_is_idempotent(self):
        profiles = [NONE_PROFILE, EMPHASIS_LIMITED, FULL_PROFILE, FULL_DECLARED, resolve("polly", "Joanna-Neural")]
        for profile in profiles:
            for doc in SAMPLE_DOCS:
                with self.subTest(profile=profile.support_level, doc=doc):
                    once = self.processor.transform(doc, profile)
                    self.assertEqual(self.processor.transform(once, profile), once)


class TestTreeTransform(TransformTests, unittest.TestCase):
    strategy = "tree"


class TestRegexTransform(TransformTests, unittest.TestCase):
    strategy = "regex"


class TestValidate(unittest.TestCase):

    def setUp(self):
        self.processor = MarkupProcessor()

    def test_missing_root_is_error(self):
        result = self.processor.validate("<prosody>hi</prosody>", FULL_PROFILE)

        self.assertFalse(result.is_valid)
        self.assertEqual(len(result.errors), 1)

    def test_xml_declaration_allowed_before_root(self):
        result = self.processor.validate('<?xml version="1.0"?>\n<speak>Hi</speak>', FULL_PROFILE)
        self.assertTrue(result.is_valid)

    def test_no_markup_profile_warns_but_valid(self):
        result = self.processor.validate("<speak><emphasis>x</emphasis></speak>", resolve("openai"), "openai")

        self.assertTrue(result.is_valid)
        self.assertEqual(len(result.warnings), 1)
        warning = result.warnings[0]
        self.assertIsInstance(warning, CapabilityMismatchWarning)
        self.assertEqual(warning.engine_id, "openai")
        self.assertEqual(warning.tag, ALL_TAGS)

    def test_limited_warns_per_present_tag(self):
        result = self.processor.validate(
            "<speak><emphasis>x</emphasis> plain</speak>", resolve("polly", "Joanna-Neural"), "polly"
        )

        self.assertTrue(result.is_valid)
        self.assertEqual([w.tag for w in result.warnings], ["emphasis", "speak"])
        self.assertIn("emphasis", str(result.warnings[0]))

    def test_limited_without_unsupported_tags_has_no_tag_warnings(self):
        result = self.processor.validate("<speak><prosody rate='slow'>x</prosody></speak>", EMPHASIS_LIMITED)
        self.assertEqual(result.warnings, [])

    def test_wildcard_single_warning(self):
        result = self.processor.validate(
            "<speak><emphasis>x</emphasis><prosody>y</prosody></speak>", resolve("google", "en-US-Studio-O")
        )
        self.assertEqual(len(result.warnings), 1)
        self.assertEqual(result.warnings[0].tag, ALL_TAGS)

    def test_missing_declarations_warn(self):
        result = self.processor.validate("<speak>Hi</speak>", FULL_DECLARED)

        self.assertTrue(result.is_valid)
        self.assertEqual(len(result.warnings), 2)

    def test_present_declarations_do_not_warn(self):
        result = self.processor.validate(f'<speak version="1.0" xmlns="{NAMESPACE}">Hi</speak>', FULL_DECLARED)
        self.assertEqual(result.warnings, [])

    def test_quoted_angle_bracket_in_root_attributes(self):
        doc = f'<speak a=">" version="1.0" xmlns="{NAMESPACE}">Hi</speak>'

        self.assertEqual(root_attributes(doc), {"a": ">", "version": "1.0", "xmlns": NAMESPACE})
        self.assertEqual(self.processor.validate(doc, FULL_DECLARED).warnings, [])


class TestParser(unittest.TestCase):

    def test_serialize_round_trips_input(self):
        docs = SAMPLE_DOCS + ["<speak>a < b <prosody>c</speak>", "plain text", "<speak>x</p>y</speak>"]
        for doc in docs:
            with self.subTest(doc=doc):
                self.assertEqual(parser.serialize(parser.parse(doc)), doc)

    def test_tree_shape(self):
        nodes = parser.parse('<speak><prosody rate="fast">hi<break/></prosody></speak>')
        root = parser.find_root(nodes)

        self.assertIsNotNone(root)
        prosody = root.children[0]
        self.assertEqual(prosody.name, "prosody")
        self.assertEqual(prosody.attributes, {"rate": "fast"})
        self.assertTrue(prosody.children[1].self_closing)
        self.assertEqual([e.name for e in parser.iter_elements(nodes)], ["speak", "prosody", "break"])

    def test_stray_close_kept_as_raw(self):
        nodes = parser.parse("<speak>x</emphasis></speak>")
        raw = parser.find_root(nodes).children[1]

        self.assertIsInstance(raw, parser.Raw)
        self.assertEqual(raw.kind, "stray_close")
        self.assertEqual(raw.name, "emphasis")

    def test_attribute_with_angle_bracket(self):
        nodes = parser.parse('<speak><sub alias="a > b">x</sub></speak>')
        sub = parser.find_root(nodes).children[0]
        self.assertEqual(sub.attributes["alias"], "a > b")


class TestStripMarkup(unittest.TestCase):

    def test_strip_markup(self):
        self.assertEqual(strip_markup('<speak>Hello <break time="1s"/><emphasis>there</emphasis></speak>'), "Hello there")

    def test_plain_text_whitespace_collapsed(self):
        self.assertEqual(strip_markup("  spaced   out  "), "spaced out")


class TestProcessorConfig(unittest.TestCase):

    def test_unknown_strategy(self):
        with self.assertRaises(ValueError):
            MarkupProcessor("lxml")


if __name__ == "__main__":
    unittest.main()
