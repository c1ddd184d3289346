import itertools

from variantstrip.player_log import (
    CompiledVariantIndex,
    PlayerLogDetector,
    VariantDetector,
    VariantKey,
    any_passed,
    filter_log_lines,
    is_unnamed_pass,
    parse_log,
    parse_log_text,
    split_keywords,
    validate_log,
)

SAMPLE_LOG = "\n".join(
    [
        "Initialize engine version: 2022.3.10f1",
        "Compiled shader: Standard, pass: FORWARD, stage: vertex, keywords DIRECTIONAL SHADOWS_SCREEN",
        "Compiled shader: Standard, pass: FORWARD, stage: fragment, keywords DIRECTIONAL SHADOWS_SCREEN",
        "Compiled shader: Standard, pass: ShadowCaster, stage: vertex, keywords SHADOWS_DEPTH",
        "Compiled shader: Sprites/Default, pass: <Unnamed Pass 0>, stage: vertex, keywords no keywords",
        "Unloading 3 unused Assets",
    ]
)


def test_variant_key_normalizes_case_and_empties():
    """Test VariantKey lowercases fields and drops empty keywords."""
    key = VariantKey("Standard", "FORWARD", ["DIRECTIONAL", "", "Fog_Linear", "directional"])
    assert key.shader_name == "standard"
    assert key.pass_name == "forward"
    assert key.keywords == frozenset({"directional", "fog_linear"})


def test_variant_key_equality_is_case_insensitive():
    """Test VariantKey equality ignores case and keyword order."""
    a = VariantKey("Standard", "Forward", ["A", "B"])
    b = VariantKey("STANDARD", "forward", ["b", "a"])
    assert a == b
    assert b == a
    assert hash(a) == hash(b)


def test_variant_key_hash_agrees_for_all_keyword_orders():
    """Test VariantKey hash is the same for every keyword insertion order."""
    keywords = ["FOO", "BAR", "BAZ"]
    keys = [VariantKey("s", "p", list(order)) for order in itertools.permutations(keywords)]
    assert len({hash(k) for k in keys}) == 1
    assert len(set(keys)) == 1


def test_variant_key_equality_is_transitive_across_unnamed_passes():
    """Test unnamed passes compare equal regardless of their text."""
    a = VariantKey("s", "", ["foo"])
    b = VariantKey("s", "Unnamed 2", ["foo"])
    c = VariantKey("s", "Pass 3", ["foo"])
    assert a == b
    assert b == c
    assert a == c
    assert hash(a) == hash(b) == hash(c)


def test_variant_key_named_passes_must_match():
    """Test differently named passes never compare equal."""
    assert VariantKey("s", "Forward", []) != VariantKey("s", "ForwardAdd", [])
    assert VariantKey("s", "Forward", []) != VariantKey("s", "", [])


def test_variant_key_keyword_sets_must_match():
    """Test adding or removing a keyword breaks equality."""
    base = VariantKey("s", "p", ["foo", "bar"])
    assert base != VariantKey("s", "p", ["foo"])
    assert base != VariantKey("s", "p", ["foo", "bar", "baz"])
    assert base != VariantKey("t", "p", ["foo", "bar"])


def test_variant_key_not_equal_to_other_types():
    """Test VariantKey does not compare equal to tuples."""
    assert VariantKey("s", "p", []) != ("s", "p", frozenset())


def test_is_unnamed_pass():
    """Test unnamed pass classification."""
    assert is_unnamed_pass("")
    assert is_unnamed_pass("<Unnamed Pass 1>")
    assert is_unnamed_pass("UNNAMED")
    assert is_unnamed_pass("pass 12")
    assert is_unnamed_pass("Pass\t4")
    assert not is_unnamed_pass("Forward")
    assert not is_unnamed_pass("passthrough")


def test_split_keywords():
    """Test keyword field splitting."""
    assert split_keywords("FOO BAR") == ["FOO", "BAR"]
    assert split_keywords("no keywords") == []
    assert split_keywords("FOO  BAR") == ["FOO", "", "BAR"]


def test_parse_log_text_single_line():
    """Test parsing a single compiled shader line."""
    result = parse_log_text("Compiled shader: S, pass: P, stage: vertex, keywords FOO BAR")
    assert result == {"s": {VariantKey("s", "p", ["foo", "bar"])}}


def test_parse_log_text_no_keywords():
    """Test 'no keywords' yields an empty keyword set."""
    result = parse_log_text("Compiled shader: S, pass: P, stage: vertex, keywords no keywords")
    (key,) = result["s"]
    assert key.keywords == frozenset()


def test_parse_log_text_skips_other_lines_and_deduplicates():
    """Test non-matching lines are skipped and stages collapse into one variant."""
    result = parse_log_text(SAMPLE_LOG)
    assert set(result) == {"standard", "sprites/default"}
    assert result["standard"] == {
        VariantKey("Standard", "FORWARD", ["DIRECTIONAL", "SHADOWS_SCREEN"]),
        VariantKey("Standard", "ShadowCaster", ["SHADOWS_DEPTH"]),
    }
    assert result["sprites/default"] == {VariantKey("Sprites/Default", "", [])}


def test_parse_log_text_prefix_must_start_line():
    """Test lines that only contain the prefix are ignored."""
    result = parse_log_text("[Info] Compiled shader: S, pass: P, stage: vertex, keywords FOO")
    assert result == {}


def test_parse_log_text_empty():
    """Test empty and missing input yield an empty mapping."""
    assert parse_log_text("") == {}
    assert parse_log_text(None) == {}


def test_parse_log_text_handles_crlf():
    """Test Windows line endings do not leak into keywords."""
    result = parse_log_text("Compiled shader: S, pass: P, stage: vertex, keywords FOO\r\n")
    assert result == {"s": {VariantKey("s", "p", ["foo"])}}


def test_parse_log_file(tmp_path):
    """Test parse_log reads a file."""
    log_file = tmp_path / "Player.log"
    log_file.write_text(SAMPLE_LOG, encoding="utf-8")
    result = parse_log(str(log_file))
    assert len(result["standard"]) == 2


def test_filter_log_lines():
    """Test filtering keeps only compiled shader lines."""
    lines = filter_log_lines(SAMPLE_LOG)
    assert len(lines) == 4
    assert all("Compiled shader: " in line for line in lines)


def test_validate_log_rewrite(tmp_path):
    """Test validate_log rewrites the log with compiled shader lines only."""
    log_file = tmp_path / "Player.log"
    log_file.write_text(SAMPLE_LOG, encoding="utf-8")
    result = validate_log(str(log_file), rewrite=True)
    assert set(result) == {"standard", "sprites/default"}
    content = log_file.read_text(encoding="utf-8")
    assert "Initialize engine" not in content
    assert len(content.splitlines()) == 4


def test_validate_log_without_rewrite_keeps_file(tmp_path):
    """Test validate_log leaves the file alone unless asked to rewrite."""
    log_file = tmp_path / "Player.log"
    log_file.write_text(SAMPLE_LOG, encoding="utf-8")
    validate_log(str(log_file))
    assert log_file.read_text(encoding="utf-8") == SAMPLE_LOG


def test_compiled_variant_index_lookup():
    """Test index lookups by shader name."""
    index = CompiledVariantIndex.from_text(SAMPLE_LOG)
    assert len(index) == 3
    assert index.shader_names == ["sprites/default", "standard"]
    assert VariantKey("standard", "forward", ["directional", "shadows_screen"]) in index
    assert VariantKey("missing", "forward", []) not in index
    assert index.variants_for("MISSING") == frozenset()


def test_compiled_variant_index_to_yaml_data():
    """Test the YAML summary of the index."""
    index = CompiledVariantIndex.from_text("Compiled shader: S, pass: P, stage: vertex, keywords B A")
    assert index.to_yaml_data() == {"shaders": {"s": [{"pass": "p", "keywords": ["a", "b"]}]}}


def test_player_log_detector_round_trip():
    """Test every logged variant passes and changed keyword sets do not."""
    index = CompiledVariantIndex.from_text(SAMPLE_LOG)
    detector = PlayerLogDetector(index)
    for shader_name in index.shader_names:
        for key in index.variants_for(shader_name):
            keywords = list(key.keywords)
            assert detector.is_passed(key.shader_name, key.pass_name, keywords)
            assert not detector.is_passed(key.shader_name, key.pass_name, keywords + ["EXTRA"])
            if keywords:
                assert not detector.is_passed(key.shader_name, key.pass_name, keywords[1:])


def test_player_log_detector_unnamed_pass_and_unknown_shader():
    """Test unnamed pass leniency and unknown shaders."""
    detector = PlayerLogDetector(CompiledVariantIndex.from_text(SAMPLE_LOG))
    assert detector.is_passed("Sprites/Default", "", [])
    assert detector.is_passed("Sprites/Default", "Pass 1", [])
    assert not detector.is_passed("Unknown", "", [])


def test_any_passed_combines_detectors():
    """Test detectors are combined with logical OR."""

    class AlwaysPassed(VariantDetector):
        def is_passed(self, shader_name, pass_name, keywords):
            return True

    log_detector = PlayerLogDetector(CompiledVariantIndex())
    assert not any_passed([log_detector], "s", "p", [])
    assert any_passed([log_detector, AlwaysPassed()], "s", "p", [])
    assert not any_passed([], "s", "p", [])
