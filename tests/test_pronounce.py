import json

from voxprint.options import SSML_BREAKS, Options
from voxprint.pronounce import (
    Markup,
    PronunciationEngine,
    Prosody,
    SymbolTable,
    Word,
    build_symbol_table,
    load_alias_file,
    load_symbol_file,
    parse_aliases,
    parse_symbol_lines,
    render,
)


def test_word_entry_is_isolated_from_neighbours():
    out = render("it's", [{"'": Word("quote")}])
    assert out == "it quote  s"
    assert out.split() == ["it", "quote", "s"]


def test_prosody_wrapped_markup_in_ssml_mode():
    table = {"&": Markup(plain="&", ssml="&amp;", prosody=Prosody(pitch="+100%"))}
    out = render("a & b", [table], ssml=True, breaks=SSML_BREAKS)
    assert '<prosody pitch="+100%">&amp;</prosody>' in out
    assert "<break/>" in out


def test_prosody_rate_is_included_when_present():
    entry = Markup(plain="&", ssml="&amp;", prosody=Prosody(pitch="low", rate="slow"))
    assert entry.spoken(True) == '<prosody pitch="low" rate="slow">&amp;</prosody>'


def test_markup_entry_without_prosody_uses_ssml_text():
    out = render("<", [{"<": Markup(plain="<", ssml="&lt;")}], ssml=True, breaks=SSML_BREAKS)
    assert out == " &lt; <break/> "


def test_markup_entry_in_plain_mode_uses_plain_text():
    table = {"&": Markup(plain="and", ssml="&amp;", prosody=Prosody(pitch="low"))}
    assert render("a&b", [table]) == "a and  b"


def test_first_table_wins():
    general = SymbolTable("common", {'"': Word("quotes")})
    escape = SymbolTable("ssml", {'"': Markup(plain='"', ssml="&quot;"), "&": Word("amp")})
    out = render('"&', [general, escape])
    assert out == " quotes   amp  "


def test_unmatched_characters_pass_through_without_breaks():
    text = "plain text, 42 éü"
    assert render(text, [{"(": Word("paren")}]) == text


def test_every_character_survives_rendering():
    text = "f(a, 'b')"
    out = render(text, [{"(": Word("paren"), ")": Word("close paren")}])
    for ch in "fa, 'b'":
        assert ch in out
    assert out.count("paren") == 2


def test_render_is_deterministic():
    tables = [{"(": Word("paren"), "'": Markup(plain="'", ssml="&apos;", prosody=Prosody(pitch="low"))}]
    first = render("x('y')", tables, ssml=True, breaks=SSML_BREAKS)
    assert render("x('y')", tables, ssml=True, breaks=SSML_BREAKS) == first


def test_symbol_lines_skip_comments_and_malformed_lines():
    text = "\n".join(
        [
            "# comment",
            "   # indented comment",
            "",
            "(\tparenthesis_l   ",
            "no tab here",
            "\tempty symbol",
            "[]\tbracket",
        ]
    )
    assert parse_symbol_lines(text) == {"(": "parenthesis_l", "[": "bracket", "]": "bracket"}


def test_aliases_become_tagged_entries():
    aliases = parse_aliases(
        {
            "brace_l": "brace",
            "quote": {"plain": "'", "ssml": "&apos;", "prosody": {"pitch": "low"}},
            "lt": {"plain": "<"},
            "broken": {"ssml": "&x;"},
        }
    )
    assert aliases["brace_l"] == Word("brace")
    assert aliases["quote"] == Markup(plain="'", ssml="&apos;", prosody=Prosody(pitch="low"))
    assert aliases["lt"] == Markup(plain="<", ssml="&lt;")
    assert "broken" not in aliases


def test_build_symbol_table_resolves_aliases_once():
    aliases = {"parenthesis_l": Word("paren")}
    table = build_symbol_table("common", {"(": "parenthesis_l", ")": "close"}, aliases)
    assert table.get("(") == Word("paren")
    assert table.get(")") == Word("close")
    assert len(table) == 2


def test_missing_files_warn_and_yield_empty_tables(tmp_path):
    warnings = []
    assert load_symbol_file(tmp_path / "nope.tsv", warnings.append) == {}
    assert load_alias_file(tmp_path / "nope.json", warnings.append) == {}
    assert len(warnings) == 2
    assert "nope.tsv" in warnings[0]


def test_engine_loads_packaged_tables():
    engine = PronunciationEngine.load(Options())
    assert [t.namespace for t in engine.tables()] == ["common"]
    assert engine.render("f(x)") == "f paren  x close paren  "


def test_engine_adds_escape_table_in_ssml_mode():
    engine = PronunciationEngine.load(Options(use_ssml=True))
    assert [t.namespace for t in engine.tables()] == ["common", "ssml"]
    out = engine.render("a & b")
    assert '<prosody pitch="+100%" rate="slow">&amp;</prosody>' in out
    assert "&" not in out.replace("&amp;", "")


def test_engine_with_custom_files(tmp_path):
    symbols = tmp_path / "symbols"
    pronounce = tmp_path / "pronounce"
    symbols.mkdir()
    pronounce.mkdir()
    (symbols / "code.tsv").write_text("=\tequals\n;\tsemi\n", encoding="utf-8")
    (symbols / "ssml.tsv").write_text("&\tamp\n", encoding="utf-8")
    (pronounce / "en.json").write_text(json.dumps({"semi": "semicolon"}), encoding="utf-8")
    options = Options(symbol_namespaces=("code",), symbols_dir=symbols, pronounce_dir=pronounce)
    engine = PronunciationEngine.load(options)
    assert engine.render("a=b;") == "a equals  b semicolon  "


def test_reconfigure_returns_new_engine():
    engine = PronunciationEngine.load(Options())
    other = engine.reconfigure(Options(use_ssml=True))
    assert other is not engine
    assert not engine.ssml
    assert other.ssml


def test_word_text_is_escaped_only_in_ssml_mode():
    table = {"x": Word("R&D")}
    assert render("x", [table], ssml=True, breaks=SSML_BREAKS) == " R&amp;D <break/> "
    assert render("x", [table]) == " R&D  "
