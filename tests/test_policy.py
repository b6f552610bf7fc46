"""
Tests for the protection policy: path normalization, glob matching and
ordinary/sensitive/protected classification.
"""

import pytest

from tollgate.config import MutationSettings
from tollgate.mutation import PathMatcher, ProtectionPolicy, normalize_path
from tollgate.mutation.policy import escapes_root, glob_to_regex
from tollgate.schemas import PathClass


class TestNormalizePath:
    """Paths are folded to root-relative POSIX form before matching."""

    @pytest.mark.parametrize("raw,expected", [
        ("src/app.py", "src/app.py"),
        ("./src/app.py", "src/app.py"),
        ("/src/app.py", "src/app.py"),
        ("src//lib/../app.py", "src/app.py"),
        ("src\\lib\\auth.ts", "src/lib/auth.ts"),
        (".", ""),
        ("", ""),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_path(raw) == expected

    def test_parent_segments_escape_root(self):
        assert escapes_root(normalize_path("../secrets.txt"))
        assert escapes_root(normalize_path("src/../../etc/passwd"))
        assert not escapes_root(normalize_path("src/../README.md"))
        assert not escapes_root("..hidden/file")


class TestPathMatcher:
    """Glob semantics are anchored at the working-tree root."""

    def test_double_star_prefix_matches_zero_segments(self):
        matcher = PathMatcher(["**/settings.py"])
        assert matcher.matches("settings.py")
        assert matcher.matches("app/config/settings.py")
        assert not matcher.matches("app/settings.pyc")

    def test_trailing_double_star_matches_directory_and_contents(self):
        matcher = PathMatcher(["src/lib/auth/**"])
        assert matcher.matches("src/lib/auth")
        assert matcher.matches("src/lib/auth/session.ts")
        assert matcher.matches("src/lib/auth/providers/github.ts")
        assert not matcher.matches("src/lib/authz.ts")

    def test_single_star_stays_within_segment(self):
        matcher = PathMatcher(["src/lib/*.ts"])
        assert matcher.matches("src/lib/db.ts")
        assert not matcher.matches("src/lib/nested/db.ts")

    def test_question_mark_is_one_character(self):
        matcher = PathMatcher(["v?.txt"])
        assert matcher.matches("v1.txt")
        assert not matcher.matches("v10.txt")
        assert not matcher.matches("v/.txt")

    def test_patterns_are_anchored(self):
        matcher = PathMatcher([".env"])
        assert matcher.matches(".env")
        assert not matcher.matches("config/.env")

    def test_regex_metacharacters_are_literal(self):
        matcher = PathMatcher(["next.config.*"])
        assert matcher.matches("next.config.js")
        assert not matcher.matches("nextXconfigXjs")

    def test_empty_matcher_matches_nothing(self):
        matcher = PathMatcher([])
        assert len(matcher) == 0
        assert not matcher.matches("anything")

    def test_matching_patterns_in_table_order(self):
        matcher = PathMatcher(["src/**", "**/*.ts", "docs/**"])
        assert matcher.matching_patterns("src/lib/db.ts") == ["src/**", "**/*.ts"]

    def test_glob_to_regex_escapes_literals(self):
        assert glob_to_regex("a+b") == r"a\+b"


class TestProtectionPolicy:
    """Classification against the default tables."""

    @pytest.fixture
    def policy(self):
        return ProtectionPolicy()

    @pytest.mark.parametrize("path", [
        "src/lib/auth.ts",
        "src/lib/auth/session.ts",
        "src/app/api/auth/route.ts",
        "src/middleware.ts",
        ".env",
        ".env.local",
        "package.json",
        "pyproject.toml",
        ".git/config",
        ".github/workflows/ci.yml",
        "prisma/migrations/20240101_init/migration.sql",
        "node_modules/react/index.js",
        ".backups/src_app.py_20260101T000000000000Z",
        "src/tollgate/orchestrator.py",
    ])
    def test_protected(self, policy, path):
        assert policy.classify(path) is PathClass.PROTECTED
        assert policy.is_protected(path)

    @pytest.mark.parametrize("path", [
        "prisma/schema.prisma",
        "src/app/layout.tsx",
        "src/app/page.tsx",
        "src/lib/db.ts",
        "app/settings.py",
    ])
    def test_sensitive(self, policy, path):
        assert policy.classify(path) is PathClass.SENSITIVE
        assert policy.is_sensitive(path)

    @pytest.mark.parametrize("path", [
        "src/components/Button.tsx",
        "README.md",
        "src/app/dashboard/page.tsx",
        "tests/test_app.py",
    ])
    def test_ordinary(self, policy, path):
        assert policy.classify(path) is PathClass.ORDINARY

    def test_protection_beats_sensitivity(self):
        policy = ProtectionPolicy(
            protected_patterns=["src/lib/**"],
            sensitive_patterns=["src/lib/**/*.ts"],
        )
        assert policy.classify("src/lib/db.ts") is PathClass.PROTECTED
        assert not policy.is_sensitive("src/lib/db.ts")

    def test_pattern_order_does_not_change_classification(self):
        protected = ["src/lib/**", "src/lib/auth.ts", "**/.env", ".env*", "src/middleware.ts"]
        sensitive = ["src/**/*.ts", "src/lib/**/*.ts", "prisma/**", "**/schema.prisma", "*.md"]
        paths = [
            "src/lib/auth.ts", "src/lib/db/client.ts", ".env", "config/.env", ".env.local",
            "src/middleware.ts", "src/app/page.ts", "prisma/schema.prisma", "README.md",
            "docs/guide.md", "package.json",
        ]
        forward = ProtectionPolicy(protected, sensitive)
        expected = [PathClass.PROTECTED] * 6 + [PathClass.SENSITIVE] * 3 + [PathClass.ORDINARY] * 2
        assert [forward.classify(p) for p in paths] == expected
        orders = [
            (list(reversed(protected)), list(reversed(sensitive))),
            (protected[2:] + protected[:2], sensitive[3:] + sensitive[:3]),
            (sorted(protected), sorted(sensitive, reverse=True)),
        ]

        for protected_order, sensitive_order in orders:
            shuffled = ProtectionPolicy(protected_order, sensitive_order)
            assert [shuffled.classify(p) for p in paths] == expected

    def test_leading_dot_slash_does_not_bypass(self, policy):
        assert policy.is_protected("./src/lib/auth.ts")
        assert policy.is_protected("/.env")
        assert policy.is_protected("src/components/../lib/auth.ts")

    def test_partition(self, policy):
        part = policy.partition(["src/lib/auth.ts", "prisma/schema.prisma", "README.md"])
        assert part.protected == ["src/lib/auth.ts"]
        assert part.sensitive == ["prisma/schema.prisma"]
        assert part.ordinary == ["README.md"]

    def test_explain(self, policy):
        info = policy.explain("./src/lib/auth/session.ts")
        assert info["normalized"] == "src/lib/auth/session.ts"
        assert info["class"] == "protected"
        assert "src/lib/auth/**" in info["protected_by"]
        assert "src/lib/**/*.ts" in info["sensitive_by"]

    def test_from_settings(self):
        settings = MutationSettings(protected_patterns=["secret/**"], sensitive_patterns=["*.md"])
        policy = ProtectionPolicy.from_settings(settings)
        assert policy.protected_patterns == ("secret/**",)
        assert policy.is_protected("secret/key.pem")
        assert policy.is_sensitive("README.md")
        assert policy.classify("src/lib/auth.ts") is PathClass.ORDINARY
