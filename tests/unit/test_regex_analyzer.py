"""
Unit tests for the pattern analyzer
Tests rule matching, tie-breaking, pattern strength and entity extraction
"""
import pytest

from coursebot.services.regex_analyzer import PatternAnalyzer, RegexAnalysisResult, RegexLimitations


class TestIntentMatching:
    """Tests for rule-table intent matching"""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("記錄課程", "record_course"),
            ("新增明天下午兩點的數學課", "record_course"),
            ("取消明天的數學課", "cancel_course"),
            ("清空課表", "clear_schedule"),
            ("查詢這週的課表", "query_schedule"),
            ("把數學課改到下午三點", "modify_course"),
            ("小明每週三下午四點鋼琴課", "create_recurring_course"),
            ("上次數學課學了什麼", "query_course_content"),
            ("今天數學課學了分數", "record_lesson_content"),
            ("記錄英文課的內容", "record_lesson_content"),
            ("上傳今天上課的照片", "upload_class_photo"),
            ("課前半小時提醒我", "set_reminder"),
            ("add a piano class tomorrow", "record_course"),
        ],
    )
    def test_intent_detection(self, pattern_analyzer, text, expected):
        """Test representative messages for each rule"""
        result = pattern_analyzer.analyze(text)
        assert result.intent == expected

    @pytest.mark.unit
    def test_unmatched_input(self, pattern_analyzer):
        """Test unmatched text yields unknown with zero strength"""
        result = pattern_analyzer.analyze("今天天氣真好")

        assert isinstance(result, RegexAnalysisResult)
        assert result.intent == "unknown"
        assert result.entities == {}
        assert result.match_details.pattern_strength == 0

    @pytest.mark.unit
    @pytest.mark.parametrize("text", ["", "   ", None, 42, ["記錄課程"]])
    def test_never_raises_for_odd_input(self, pattern_analyzer, text):
        """Test empty and non-string input is treated as empty text"""
        result = pattern_analyzer.analyze(text)
        assert result.intent == "unknown"
        assert result.match_details.pattern_strength == 0

    @pytest.mark.unit
    def test_exclusion_disqualifies_rule(self, pattern_analyzer):
        """Test record_course is excluded when a cancel verb is present"""
        result = pattern_analyzer.analyze("取消預約的課")
        assert result.intent == "cancel_course"

    @pytest.mark.unit
    def test_analysis_is_pure(self, pattern_analyzer):
        """Test repeated analysis of the same text gives identical results"""
        first = pattern_analyzer.analyze("取消明天小明的數學課")
        second = pattern_analyzer.analyze("取消明天小明的數學課")
        assert first.to_dict() == second.to_dict()

    @pytest.mark.unit
    def test_limitations_are_declared(self, pattern_analyzer):
        """Test every result declares the capability boundary"""
        for text in ("記錄課程", "hello"):
            limitations = pattern_analyzer.analyze(text).limitations
            assert limitations == RegexLimitations(context_blind=True, temporal_blind=True, mood_blind=True)


class TestTieBreaking:
    """Tests for longest-span and declaration-order tie-breaking"""

    @pytest.mark.unit
    def test_longest_span_wins(self):
        """Test the rule covering more of the message wins regardless of order"""
        analyzer = PatternAnalyzer(
            rules=[
                {"intent": "short", "patterns": ["課"]},
                {"intent": "long", "patterns": ["數學課"]},
            ]
        )
        assert analyzer.analyze("數學課").intent == "long"

    @pytest.mark.unit
    def test_equal_span_earlier_rule_wins(self):
        """Test equal spans are resolved by declaration order"""
        analyzer = PatternAnalyzer(
            rules=[
                {"intent": "first", "patterns": ["數學"]},
                {"intent": "second", "patterns": ["數學"]},
            ]
        )
        assert analyzer.analyze("數學").intent == "first"


class TestPatternStrength:
    """Tests for pattern strength scoring"""

    @pytest.mark.unit
    def test_full_coverage_is_strong(self, pattern_analyzer):
        """Test a message fully covered by a pattern with keywords is strong"""
        result = pattern_analyzer.analyze("記錄課程")

        assert result.match_details.pattern_strength > 0.9
        assert "記錄" in result.match_details.keyword_matches
        assert "課程" in result.match_details.keyword_matches

    @pytest.mark.unit
    def test_strength_in_unit_interval(self, pattern_analyzer):
        """Test strength stays within [0, 1]"""
        for text in ["記錄課程", "查詢這週的課表", "明天有什麼課嗎？我想知道", "清空課表"]:
            strength = pattern_analyzer.analyze(text).match_details.pattern_strength
            assert 0.0 <= strength <= 1.0

    @pytest.mark.unit
    def test_partial_coverage_is_weaker(self, pattern_analyzer):
        """Test a match buried in a long message scores lower than a full match"""
        full = pattern_analyzer.analyze("查詢課表")
        partial = pattern_analyzer.analyze("我最近很忙，不知道該怎麼辦，可以幫我查詢課表")

        assert full.intent == partial.intent == "query_schedule"
        assert partial.match_details.pattern_strength < full.match_details.pattern_strength

    @pytest.mark.unit
    def test_ambiguous_term_penalty(self):
        """Test an ambiguous term without a stronger keyword lowers strength"""
        analyzer = PatternAnalyzer(
            rules=[{"intent": "modify_course", "patterns": ["改"], "keywords": ["修改"], "ambiguous": ["改"]}]
        )
        weak = analyzer.analyze("改")
        strong = analyzer.analyze("修改")

        assert weak.match_details.ambiguous_terms == ["改"]
        assert strong.match_details.ambiguous_terms == []
        assert weak.match_details.pattern_strength == pytest.approx(0.65)


class TestEntityExtraction:
    """Tests for basic entity extraction"""

    @pytest.mark.unit
    def test_course_student_date_time(self, pattern_analyzer):
        """Test extraction of all basic entities from one message"""
        result = pattern_analyzer.analyze("新增明天下午3點小明的數學課")

        assert result.entities["course_name"] == "數學課"
        assert result.entities["student_name"] == "小明"
        assert result.entities["date_phrase"] == "明天"
        assert result.entities["time_phrase"] == "下午3點"

    @pytest.mark.unit
    def test_grade_and_instrument_are_not_names(self, pattern_analyzer):
        """Test 小三 and 小提琴 are not taken as student names"""
        result = pattern_analyzer.analyze("記錄小三的小提琴課")

        assert "student_name" not in result.entities
        assert result.entities["course_name"] == "小提琴課"

    @pytest.mark.unit
    def test_english_course_and_student(self, pattern_analyzer):
        """Test English class names and possessive student names"""
        result = pattern_analyzer.analyze("cancel Emma's piano class")

        assert result.entities["course_name"] == "piano"
        assert result.entities["student_name"] == "Emma"

    @pytest.mark.unit
    def test_week_day_date_phrase(self, pattern_analyzer):
        """Test relative week-day phrases are kept whole"""
        result = pattern_analyzer.analyze("下週三的英文課取消")
        assert result.entities["date_phrase"] == "下週三"


class TestRuleTableIntrospection:
    """Tests for supported intents and examples"""

    @pytest.mark.unit
    def test_supported_intents(self, pattern_analyzer):
        intents = pattern_analyzer.supported_intents()
        assert "record_course" in intents
        assert "cancel_course" in intents
        assert len(intents) == len(set(intents))

    @pytest.mark.unit
    def test_examples_match_their_intent(self, pattern_analyzer):
        """Test every declared Chinese example is recognized as its own intent"""
        for intent in pattern_analyzer.supported_intents():
            examples = pattern_analyzer.examples(intent)
            assert examples
            for example in examples:
                assert pattern_analyzer.analyze(example).intent == intent, example

    @pytest.mark.unit
    def test_examples_for_unknown_intent(self, pattern_analyzer):
        assert pattern_analyzer.examples("no_such_intent") == []
