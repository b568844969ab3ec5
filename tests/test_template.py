"""Tests for sqlrecord.template."""

import pytest

from sqlrecord.exceptions import MalformedTemplate
from sqlrecord.template import SqlTemplate, parse_template


class TestSqlTemplateParse:
    """Tests for locating and rewriting named parameters."""

    def test_single_parameter(self):
        """Test a named parameter becomes a positional placeholder."""
        t = SqlTemplate.parse("SELECT * FROM super_heroes WHERE name = :name")
        assert t.text == "SELECT * FROM super_heroes WHERE name = %s"
        assert t.names == ("name",)
        assert t.sql == "SELECT * FROM super_heroes WHERE name = :name"

    def test_repeated_parameter_bound_per_occurrence(self):
        """Test a repeated name yields one placeholder per occurrence."""
        t = SqlTemplate.parse("SELECT * FROM t WHERE a = :x OR b = :y OR c = :x")
        assert t.text == "SELECT * FROM t WHERE a = %s OR b = %s OR c = %s"
        assert t.names == ("x", "y", "x")
        assert t.distinct_names == ("x", "y")
        assert t.placeholder_count == 3

    def test_no_parameters(self):
        """Test SQL without tokens is returned unchanged."""
        t = SqlTemplate.parse("SELECT * FROM super_heroes")
        assert t.text == "SELECT * FROM super_heroes"
        assert t.names == ()

    def test_identifier_characters(self):
        """Test names may contain digits and underscores after the first letter."""
        t = SqlTemplate.parse("VALUES (:super_hero_id, :villain2)")
        assert t.names == ("super_hero_id", "villain2")
        assert t.text == "VALUES (%s, %s)"

    def test_multiline_insert(self):
        """Test a multi-line insert keeps its layout."""
        sql = "INSERT INTO super_heroes(id, name, email, age)\nVALUES (:id, :name, :email, :age)"
        t = SqlTemplate.parse(sql)
        assert t.text == "INSERT INTO super_heroes(id, name, email, age)\nVALUES (%s, %s, %s, %s)"
        assert t.names == ("id", "name", "email", "age")

    def test_property_counts(self):
        """Test N occurrences of K distinct names give N placeholders in first-seen order."""
        names = ["alpha", "beta", "gamma"]
        for occurrences in range(1, 7):
            used = [names[i % len(names)] for i in range(occurrences)]
            sql = "SELECT 1 WHERE " + " AND ".join(f"c{i} = :{n}" for i, n in enumerate(used))
            t = SqlTemplate.parse(sql)
            assert t.text.count("%s") == occurrences
            assert list(t.names) == used
            assert list(t.distinct_names) == list(dict.fromkeys(used))


class TestSqlTemplateLiterals:
    """Tests that quoted text and comments never yield parameters."""

    def test_single_quoted_literal(self):
        """Test a token inside a string literal is left alone."""
        t = SqlTemplate.parse("SELECT ':name' AS label FROM t WHERE id = :id")
        assert t.text == "SELECT ':name' AS label FROM t WHERE id = %s"
        assert t.names == ("id",)

    def test_escaped_quote_inside_literal(self):
        """Test a doubled quote does not end the literal."""
        t = SqlTemplate.parse("SELECT 'it''s :not' FROM t WHERE a = :a")
        assert t.text == "SELECT 'it''s :not' FROM t WHERE a = %s"
        assert t.names == ("a",)

    def test_double_quoted_identifier(self):
        """Test a token inside a quoted identifier is left alone."""
        t = SqlTemplate.parse('SELECT "odd:col" FROM t WHERE a = :a')
        assert t.text == 'SELECT "odd:col" FROM t WHERE a = %s'
        assert t.names == ("a",)

    def test_unterminated_literal(self):
        """Test an unterminated literal swallows the rest of the text."""
        t = SqlTemplate.parse("SELECT 'open :name")
        assert t.names == ()

    def test_line_comment(self):
        """Test tokens in line comments are ignored."""
        t = SqlTemplate.parse("SELECT 1 -- :skip\nFROM t WHERE a = :a")
        assert t.text == "SELECT 1 -- :skip\nFROM t WHERE a = %s"
        assert t.names == ("a",)

    def test_block_comment(self):
        """Test tokens in block comments are ignored."""
        t = SqlTemplate.parse("SELECT /* :skip */ a FROM t WHERE a = :a")
        assert t.names == ("a",)

    def test_postgres_cast(self):
        """Test ::type casts are not parameters, also right after one."""
        t = SqlTemplate.parse("SELECT :value::text, created::date FROM t")
        assert t.text == "SELECT %s::text, created::date FROM t"
        assert t.names == ("value",)

    def test_escape_string_backslash_quote(self):
        """Test a backslash-escaped quote in an E'...' string does not end it."""
        t = SqlTemplate.parse("SELECT E'it\\'s :x' AS label FROM t WHERE id = :id")
        assert t.names == ("id",)
        assert t.text == "SELECT E'it\\'s :x' AS label FROM t WHERE id = %s"

    def test_standard_string_keeps_backslash(self):
        """Test a backslash is an ordinary character in a standard string."""
        t = SqlTemplate.parse("SELECT 'C:\\' AS dir FROM t WHERE id = :id")
        assert t.names == ("id",)

    def test_identifier_ending_in_e_is_not_a_prefix(self):
        """Test only a standalone E opens an escape string."""
        t = SqlTemplate.parse("SELECT date'x\\' AS d, :id")
        assert t.names == ("id",)

    def test_backslash_escapes_option(self):
        """Test backslash escapes apply to every literal when enabled."""
        sql = "SELECT * FROM t WHERE note = 'it\\'s :x' AND alias = \"a\\\":y\" AND id = :id"
        assert SqlTemplate.parse(sql, backslash_escapes=True).names == ("id",)

    def test_dollar_quoted_body(self):
        """Test tokens in a $$ body are ignored."""
        t = SqlTemplate.parse("SELECT $$ :x $$ AS label FROM t WHERE id = :id")
        assert t.names == ("id",)
        assert t.text == "SELECT $$ :x $$ AS label FROM t WHERE id = %s"

    def test_tagged_dollar_quoted_body(self):
        """Test a $tag$ body ends only at the same tag."""
        sql = "DO $fn$ BEGIN PERFORM $$ :a $$; RAISE NOTICE '%', :b; END $fn$; SELECT :c"
        t = SqlTemplate.parse(sql)
        assert t.names == ("c",)
        assert t.text.endswith("'%%', :b; END $fn$; SELECT %s")

    def test_unterminated_dollar_quote(self):
        """Test an unterminated dollar quote swallows the rest of the text."""
        assert SqlTemplate.parse("SELECT $body$ :x").names == ()

    def test_positional_dollar_is_not_a_quote(self):
        """Test $1 style references are left as text."""
        t = SqlTemplate.parse("SELECT $1, :a, $2", paramstyle="qmark")
        assert t.text == "SELECT $1, ?, $2"
        assert t.names == ("a",)


class TestSqlTemplateStrayMarker:
    """Tests for both ends of the stray-marker policy."""

    @pytest.mark.parametrize(
        "sql",
        [
            "SELECT arr[1:2] FROM t",
            "SELECT 1 WHERE x := 1",
            "SELECT :1",
            "SELECT a:",
            "SELECT a : b",
        ],
    )
    def test_pass_through_by_default(self, sql):
        """Test a marker without identifier is kept verbatim."""
        t = SqlTemplate.parse(sql)
        assert t.text == sql
        assert t.names == ()

    @pytest.mark.parametrize(
        "sql,position",
        [
            ("SELECT arr[1:2] FROM t", 12),
            ("SELECT :1", 7),
            ("SELECT a:", 8),
        ],
    )
    def test_strict_raises(self, sql, position):
        """Test strict mode rejects a marker without identifier."""
        with pytest.raises(MalformedTemplate) as exc_info:
            SqlTemplate.parse(sql, strict=True)
        assert exc_info.value.position == position
        assert exc_info.value.sql == sql

    def test_strict_accepts_valid_tokens_and_casts(self):
        """Test strict mode still parses names, casts and quoted colons."""
        t = SqlTemplate.parse("SELECT :a::int, ':' FROM t", strict=True)
        assert t.names == ("a",)

    def test_numeric_stray_digit_raises(self):
        """Test a marker followed by a digit cannot pass through as a numeric placeholder."""
        with pytest.raises(MalformedTemplate) as exc_info:
            SqlTemplate.parse("SELECT arr[1:2] FROM t WHERE id = :id", paramstyle="numeric")
        assert exc_info.value.position == 12

    def test_numeric_other_stray_markers_pass(self):
        """Test non-digit stray markers still pass through with numeric style."""
        t = SqlTemplate.parse("SELECT 1 WHERE x := :a", paramstyle="numeric")
        assert t.text == "SELECT 1 WHERE x := :1"


class TestSqlTemplateParamstyles:
    """Tests for driver placeholder styles."""

    def test_qmark(self):
        """Test qmark style uses ? placeholders."""
        t = SqlTemplate.parse("SELECT * FROM t WHERE a = :a AND b = :b", paramstyle="qmark")
        assert t.text == "SELECT * FROM t WHERE a = ? AND b = ?"
        assert t.paramstyle == "qmark"

    def test_numeric(self):
        """Test numeric style numbers each occurrence."""
        t = SqlTemplate.parse("a = :a AND b = :b AND c = :a", paramstyle="numeric")
        assert t.text == "a = :1 AND b = :2 AND c = :3"

    def test_format_escapes_percent(self):
        """Test literal percent signs are doubled for format-style drivers."""
        t = SqlTemplate.parse("SELECT * FROM t WHERE name LIKE 'A%' AND id = :id")
        assert t.text == "SELECT * FROM t WHERE name LIKE 'A%%' AND id = %s"

    def test_qmark_keeps_percent(self):
        """Test percent signs are untouched for qmark drivers."""
        t = SqlTemplate.parse("SELECT * FROM t WHERE name LIKE 'A%'", paramstyle="qmark")
        assert t.text == "SELECT * FROM t WHERE name LIKE 'A%'"

    def test_unknown_paramstyle(self):
        """Test an unsupported paramstyle is rejected."""
        with pytest.raises(ValueError, match="Unsupported paramstyle"):
            SqlTemplate.parse("SELECT 1", paramstyle="named")

    @pytest.mark.parametrize("sql", ["", "   \n"])
    def test_empty_sql(self, sql):
        """Test empty SQL is rejected."""
        with pytest.raises(ValueError, match="must not be empty"):
            SqlTemplate.parse(sql)


class TestParseTemplateCache:
    """Tests for cached parsing."""

    def test_same_text_same_value(self):
        """Test parsing twice gives equal values and the cache returns one object."""
        sql = "SELECT * FROM super_heroes WHERE id = :id"
        assert SqlTemplate.parse(sql) == SqlTemplate.parse(sql)
        assert parse_template(sql) is parse_template(sql)

    def test_cache_key_includes_paramstyle(self):
        """Test different paramstyles are cached separately."""
        sql = "SELECT * FROM super_heroes WHERE id = :id"
        assert parse_template(sql, "qmark").text.endswith("?")
        assert parse_template(sql, "format").text.endswith("%s")

    def test_template_is_immutable(self):
        """Test templates cannot be modified."""
        t = SqlTemplate.parse("SELECT :a")
        with pytest.raises(AttributeError):
            t.text = "DROP TABLE t"

    def test_cache_key_includes_backslash_escapes(self):
        """Test backslash handling is part of the cache key."""
        sql = "SELECT 'a\\' AS x, :id"
        assert parse_template(sql).names == ("id",)
        assert parse_template(sql, "format", False, True).names == ()
