"""加速协议 URL 校验测试"""

from scalar.utils.net import can_url_support_gvfs


class TestCanUrlSupportGvfs:
    def test_https_ok(self) -> None:
        assert can_url_support_gvfs("https://dev.azure.com/org/_git/repo")

    def test_http_rejected_by_default(self) -> None:
        assert not can_url_support_gvfs("http://localhost:8080/repo")

    def test_http_allowed_for_testing(self) -> None:
        assert can_url_support_gvfs("http://localhost:8080/repo", allow_http=True)

    def test_other_schemes_rejected(self) -> None:
        assert not can_url_support_gvfs("git@github.com:org/repo.git", allow_http=True)
        assert not can_url_support_gvfs("file:///srv/repo", allow_http=True)
        assert not can_url_support_gvfs("/local/path")
