"""
Tests for the robots.txt policy evaluator.
"""

from seo_ranking.engines.robots.engine import RobotsPolicy, is_blocked_by_robots


class TestRobotsPolicy:

    def test_disallowed_prefix(self):
        body = "User-agent: *\nDisallow: /private"
        assert is_blocked_by_robots(body, "https://a.com/private/x")
        assert not is_blocked_by_robots(body, "https://a.com/public")

    def test_disallow_root_blocks_everything(self):
        body = "User-agent: *\nDisallow: /"
        assert is_blocked_by_robots(body, "https://a.com/")
        assert is_blocked_by_robots(body, "https://a.com/any/page")

    def test_other_agents_ignored(self):
        body = "User-agent: Googlebot\nDisallow: /"
        assert not is_blocked_by_robots(body, "https://a.com/")

    def test_later_universal_group_resets_verdict(self):
        body = (
            "User-agent: *\n"
            "Disallow: /private\n"
            "\n"
            "User-agent: Bingbot\n"
            "Disallow: /\n"
            "\n"
            "User-agent: *\n"
            "Allow: /\n"
        )
        assert not is_blocked_by_robots(body, "https://a.com/private")

    def test_directives_are_case_insensitive(self):
        body = "user-agent: *\nDISALLOW: /admin"
        assert RobotsPolicy(body).is_disallowed("https://a.com/admin/login")

    def test_empty_disallow_allows_all(self):
        body = "User-agent: *\nDisallow:"
        assert not is_blocked_by_robots(body, "https://a.com/")

    def test_comments_are_stripped(self):
        body = "User-agent: * # everyone\nDisallow: /tmp # scratch"
        assert is_blocked_by_robots(body, "https://a.com/tmp/file")

    def test_url_without_path_checks_root(self):
        body = "User-agent: *\nDisallow: /"
        assert is_blocked_by_robots(body, "https://a.com")

    def test_missing_body_is_fail_open(self):
        assert not is_blocked_by_robots(None, "https://a.com/")
        assert not is_blocked_by_robots("", "https://a.com/")
