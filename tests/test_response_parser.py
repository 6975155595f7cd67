"""Tests for the Storyboard Response Parser cascade."""

import json
from unittest.mock import Mock

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st

from creative_storyboard.agents.base import AgentExecutionError
from creative_storyboard.agents.json_sanitizer import JSONSanitizerAgent
from creative_storyboard.agents.response_parser import (
    ParseContinue,
    ParseStage,
    ParseSuccess,
    ResponseParserInput,
    StoryboardResponseParser,
    clean_json_string,
    extract_by_keywords,
    extract_from_brace_scan,
    extract_from_code_blocks,
    extract_scene_title,
    mine_text,
    reconstruct_from_sections,
    validate_candidate,
)
from creative_storyboard.schemas.storyboard import StoryboardPlan
from tests.conftest import build_request


def build_scene(number: int, duration=5, **overrides):
    scene = {
        "sceneNumber": number,
        "title": f"Beat {number}",
        "description": f"Description of beat {number}",
        "duration": duration,
        "prompt": f"Cinematic prompt {number}",
        "visualStyle": {
            "lighting": "soft",
            "mood": "warm",
            "cameraAngle": "close-up",
            "composition": "centered",
        },
    }
    scene.update(overrides)
    return scene


def build_response(durations=(5, 5, 5), **overrides):
    response = {
        "narrative": {
            "hook": "Steam rising from a cup",
            "solution": "Acme arrives before the alarm",
            "callToAction": "Subscribe today",
        },
        "scenes": [build_scene(i + 1, d) for i, d in enumerate(durations)],
        "platformOptimization": {
            "primaryPlatform": "instagram",
            "aspectRatio": "9:16",
            "pacing": "fast",
            "interactionElements": ["poll sticker"],
        },
        "advertisingEffectiveness": {
            "hookStrategy": "Sound of pouring coffee",
            "emotionalArc": "Groggy to ready",
            "personalization": "Morning commuters",
            "shareability": "Relatable morning chaos",
            "ctaPower": "First box free",
        },
        "visualConsistency": {
            "characters": ["Young professional"],
            "colorPalette": ["#6F4E37"],
            "style": "Warm documentary",
        },
    }
    response.update(overrides)
    return response


@pytest.fixture
def parser():
    return StoryboardResponseParser()


def assert_valid_plan(plan, request):
    """Checks every returned plan must pass."""
    assert isinstance(plan, StoryboardPlan)
    limit = 3 if request.target_duration <= 15 else 4
    assert 1 <= len(plan.scenes) <= limit
    assert [s.scene_number for s in plan.scenes] == list(range(1, len(plan.scenes) + 1))
    assert len({s.id for s in plan.scenes}) == len(plan.scenes)
    assert all(s.duration >= 2 for s in plan.scenes)
    assert all(s.generated_images == [] for s in plan.scenes)
    assert plan.total_duration == sum(s.duration for s in plan.scenes)


# ============================================================================
# Property-Based Tests
# ============================================================================

VALID_RESPONSE_TEXT = json.dumps(build_response(), indent=2)


@settings(suppress_health_check=[HealthCheck.function_scoped_fixture], max_examples=75)
@given(
    text=st.one_of(
        st.text(max_size=400),
        st.integers(min_value=0, max_value=len(VALID_RESPONSE_TEXT)).map(lambda n: VALID_RESPONSE_TEXT[:n]),
        st.text(alphabet="{}[]\",:` \nscene", max_size=200),
    ),
    target=st.sampled_from([6, 15, 16, 30, 60]),
)
def test_parser_is_total(parser, text, target):
    """Any text yields a valid plan within the scene bounds."""
    request = build_request(target_duration=target)

    plan = parser.parse(text, request)

    assert_valid_plan(plan, request)
    assert plan.total_duration <= target


# ============================================================================
# Scenario Tests
# ============================================================================

class TestScenarios:
    """End-to-end parser behaviour on typical model outputs."""

    def test_well_formed_json(self, parser, short_request):
        output = parser.execute(ResponseParserInput(json.dumps(build_response()), short_request))

        assert output.stage in (ParseStage.BRACE_SCAN, ParseStage.CODE_BLOCK)
        assert [s.duration for s in output.plan.scenes] == [5, 5, 5]
        assert output.plan.total_duration == 15
        assert [s.title for s in output.plan.scenes] == ["Beat 1", "Beat 2", "Beat 3"]
        assert output.plan.narrative.call_to_action == "Subscribe today"
        assert output.plan.platform_optimization.aspect_ratio == "9:16"

    def test_fenced_json_inside_prose(self, parser, short_request):
        text = (
            "Here's my plan, I think you'll love it!\n\n"
            f"```json\n{json.dumps(build_response(), indent=2)}\n```\n\n"
            "Let me know what you think."
        )

        output = parser.execute(ResponseParserInput(text, short_request))

        assert output.stage == ParseStage.CODE_BLOCK
        assert output.plan.total_duration == 15
        assert len(output.plan.scenes) == 3

    def test_too_many_scenes_rejects_structured_stages(self, parser, long_request):
        text = json.dumps(build_response(durations=[4] * 8), indent=2)

        output = parser.execute(ResponseParserInput(text, long_request))

        assert output.stage in (ParseStage.TEXT_MINING, ParseStage.SYNTHETIC_DEFAULT)
        assert len(output.plan.scenes) <= 4
        assert_valid_plan(output.plan, long_request)

    def test_over_budget_durations_are_normalized(self, parser, long_request):
        text = json.dumps(build_response(durations=[10, 10, 10, 10]))

        plan = parser.parse(text, long_request)

        assert [s.duration for s in plan.scenes] == [7, 7, 7, 9]
        assert plan.total_duration <= 30

    def test_plain_prose_falls_back_to_default_template(self, parser, short_request, long_request):
        prose = "Thanks for the brief! I think we should keep things simple and warm."

        short_output = parser.execute(ResponseParserInput(prose, short_request))
        long_output = parser.execute(ResponseParserInput(prose, long_request))

        assert short_output.stage == ParseStage.SYNTHETIC_DEFAULT
        assert [s.title for s in short_output.plan.scenes] == ["Hook", "Solution", "Call to Action"]
        assert [s.title for s in long_output.plan.scenes] == ["Hook", "Problem", "Solution", "Call to Action"]
        for scene in short_output.plan.scenes + long_output.plan.scenes:
            assert "Acme Coffee" in scene.prompt

    def test_model_scene_numbers_are_overridden(self, parser, long_request):
        response = build_response(durations=[5, 5, 5])
        for scene, claimed in zip(response["scenes"], [3, 1, 7]):
            scene["sceneNumber"] = claimed

        output = parser.execute(ResponseParserInput(json.dumps(response), long_request))

        assert [s.scene_number for s in output.plan.scenes] == [1, 2, 3]
        assert any(c.violation_type == "renumbered" for c in output.corrections)

    @pytest.mark.parametrize("text", [None, "", "   ", "```json\n{\"scenes\": [\n```"])
    def test_empty_and_broken_inputs(self, parser, short_request, text):
        plan = parser.parse(text, short_request)

        assert_valid_plan(plan, short_request)

    def test_extra_scenes_truncated_to_short_form_cap(self, parser, short_request):
        text = json.dumps(build_response(durations=[3, 3, 3, 3, 3]))

        output = parser.execute(ResponseParserInput(text, short_request))

        assert len(output.plan.scenes) == 3
        assert any(c.violation_type == "too_many_scenes" for c in output.corrections)

    def test_stage_reasons_are_reported(self, parser, short_request):
        output = parser.execute(ResponseParserInput("no structure here", short_request))

        assert len(output.stage_reasons) == 4

    def test_deeply_nested_json_falls_through_to_default(self, parser, long_request):
        nested = '{"a":' * 900 + "1" + "}" * 900
        text = '```json\n{"scenes":[{"title":"x","extra":' + nested + "}]}\n```"

        output = parser.execute(ResponseParserInput(text, long_request))

        assert output.stage == ParseStage.SYNTHETIC_DEFAULT
        assert_valid_plan(output.plan, long_request)

    def test_moderately_nested_extras_are_accepted(self, parser, long_request):
        response = build_response()
        response["scenes"][0]["notes"] = {"a": {"b": {"c": {"d": ["e"]}}}}
        text = f"```json\n{json.dumps(response)}\n```"

        output = parser.execute(ResponseParserInput(text, long_request))

        assert output.stage == ParseStage.CODE_BLOCK
        assert len(output.plan.scenes) == 3


# ============================================================================
# Stage Tests
# ============================================================================

class TestCleanJsonString:
    """Cleanup applied before json.loads."""

    def test_strips_surrounding_text(self):
        assert clean_json_string('Sure! {"a": 1} Hope that helps') == '{"a": 1}'

    def test_removes_trailing_commas(self):
        assert json.loads(clean_json_string('{"a": [1, 2,], "b": {"c": 3,},}')) == {
            "a": [1, 2],
            "b": {"c": 3},
        }

    def test_collapses_newlines(self):
        assert "\n" not in clean_json_string('{\n  "a": 1\n}')

    def test_no_braces_gives_empty_string(self):
        assert clean_json_string("nothing here") == ""


class TestValidateCandidate:
    """Structural gate for candidates."""

    def test_accepts_one_to_six_scenes(self):
        assert validate_candidate({"scenes": [{}]}) is not None
        assert validate_candidate({"scenes": [{}] * 6}) is not None

    @pytest.mark.parametrize("obj", [
        {"scenes": []},
        {"scenes": [{}] * 7},
        {"scenes": "three"},
        {"scenes": [{}, "two"]},
        {"narrative": {}},
        [{"scenes": [{}]}],
        "scenes",
    ])
    def test_rejects_malformed(self, obj):
        assert validate_candidate(obj) is None


class TestStageFunctions:
    """Each cascade stage in isolation."""

    def test_code_block_skips_invalid_blocks(self):
        text = (
            "```json\n{\"not\": \"a storyboard\"}\n```\n"
            "```json\n{\"scenes\": [{\"title\": \"Real\"}]}\n```"
        )

        result = extract_from_code_blocks(text)

        assert isinstance(result, ParseSuccess)
        assert result.candidate["scenes"][0]["title"] == "Real"

    def test_code_block_without_fence_continues(self):
        assert isinstance(extract_from_code_blocks('{"scenes": [{}]}'), ParseContinue)

    def test_brace_scan_prefers_longest_candidate(self):
        text = (
            'draft: {"scenes": [{"title": "A"}]} '
            'final: {"scenes": [{"title": "B"}, {"title": "C"}]}'
        )

        result = extract_from_brace_scan(text)

        assert isinstance(result, ParseSuccess)
        assert [s["title"] for s in result.candidate["scenes"]] == ["B", "C"]

    def test_section_reconstruction_from_broken_object(self):
        text = (
            '{"narrative": {"hook": "Wake up"}, broken garbage here !!! '
            '"scenes": [{"title": "One"}, {"title": "Two"}], '
            '"visualConsistency": {"style": "noir"}'
        )

        result = reconstruct_from_sections(text)

        assert isinstance(result, ParseSuccess)
        assert result.stage == ParseStage.SECTION_RECONSTRUCTION
        assert result.candidate["narrative"] == {"hook": "Wake up"}
        assert len(result.candidate["scenes"]) == 2
        assert result.candidate["visualConsistency"] == {"style": "noir"}

    def test_section_reconstruction_needs_scenes(self):
        assert isinstance(reconstruct_from_sections('"narrative": {"hook": "x"}'), ParseContinue)

    def test_text_mining_groups_lines_into_scenes(self, long_request):
        text = (
            "Scene 1: Opening on a sunrise kitchen.\n"
            "The camera glides over steaming coffee cups slowly.\n"
            "ok\n"
            "Scene 2: The solution arrives at the door."
        )

        result = mine_text(text, long_request)

        assert isinstance(result, ParseSuccess)
        scenes = result.candidate["scenes"]
        assert len(scenes) == 2
        assert scenes[0]["description"].endswith("steaming coffee cups slowly.")
        assert "ok" not in scenes[0]["description"].split()
        assert "Acme Coffee" not in scenes[0]["description"]
        assert scenes[0]["prompt"].startswith("Professional food and beverage advertisement scene:")
        assert result.candidate["narrative"]["hook"] == "Opening on a sunrise kitchen."
        assert result.candidate["narrative"]["solution"] == "solution arrives at the door."
        assert result.candidate["narrative"]["callToAction"] is None

    def test_text_mining_without_markers_continues(self, long_request):
        assert isinstance(mine_text("Just some friendly words.", long_request), ParseContinue)

    def test_text_mining_splits_numbered_list(self, parser, long_request):
        text = (
            "1. A runner laces up shoes at dawn.\n"
            "2. She drinks an Acme shake on the porch.\n"
            "3. Close up on the Acme logo as she sprints off."
        )

        output = parser.execute(ResponseParserInput(text, long_request))

        assert output.stage == ParseStage.TEXT_MINING
        assert [s.title for s in output.plan.scenes] == [
            "A runner laces up shoes at dawn",
            "She drinks an Acme shake on the porch",
            "Close up on the Acme logo as she sprints off",
        ]
        assert [s.duration for s in output.plan.scenes] == [10, 10, 10]

    @pytest.mark.parametrize("marker", ["-", "*", "•", "2)"])
    def test_text_mining_accepts_bullet_markers(self, long_request, marker):
        text = f"{marker} Steam curls over a fresh mug\n{marker} Keys grabbed, door swings open"

        result = mine_text(text, long_request)

        assert isinstance(result, ParseSuccess)
        assert len(result.candidate["scenes"]) == 2

    def test_extract_scene_title(self):
        assert extract_scene_title("1. Opening shot. The sun rises.") == "Opening shot"
        assert extract_scene_title("## " + "x" * 60) == "x" * 47 + "..."

    def test_extract_by_keywords_uses_keyword_order(self):
        text = "The challenge is mornings. The real problem is time."

        assert extract_by_keywords(text, ["problem", "challenge"]) == "problem is time."
        assert extract_by_keywords(text, ["benefit"]) is None


class TestSanitizerFallback:
    """A candidate the sanitizer cannot repair falls back to the template."""

    def test_sanitizer_failure_uses_default(self, short_request):
        real = JSONSanitizerAgent()
        calls = []

        def flaky(input_data):
            calls.append(input_data)
            if len(calls) == 1:
                raise AgentExecutionError("SANITIZATION_FAILED", "cannot repair")
            return real.execute(input_data)

        sanitizer = Mock(spec=JSONSanitizerAgent)
        sanitizer.execute.side_effect = flaky

        output = StoryboardResponseParser(sanitizer).execute(
            ResponseParserInput(json.dumps(build_response()), short_request)
        )

        assert output.stage == ParseStage.SYNTHETIC_DEFAULT
        assert "cannot repair" in output.stage_reasons
        assert_valid_plan(output.plan, short_request)
