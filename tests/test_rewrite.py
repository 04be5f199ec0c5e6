"""Unit tests for the image attribute rewrite policy."""

from __future__ import annotations

import logging
import re

import pytest
from bs4 import BeautifulSoup

from image_cdn.config import ConfigurationError, RewriteConfig, define_options
from image_cdn.rewrite import ImageRewriter, build_origin_validator, rewrite_html

IMAGE_URL = "https://example.com/image.jpg"


def _img(html: str):
    return BeautifulSoup(html, "html.parser").find("img")


class TestEndToEnd:
    """Tests that parse, rewrite, and serialize a fragment."""

    def test_src_untouched_without_optimize_options(self, image_html: str) -> None:
        result = rewrite_html(image_html, RewriteConfig(provider="cloudflare"))
        assert _img(result)["src"] == IMAGE_URL

    def test_default_src_options(self, image_html: str) -> None:
        result = rewrite_html(image_html, define_options(optimize_src_options={}))
        assert _img(result)["src"] == "https://example.com/cdn-cgi/image/f=auto/image.jpg"

    def test_srcset(self, image_html: str) -> None:
        config = define_options(
            srcset_options_list=[({}, "1x"), ({"options": "w=200"}, "2x")],
        )
        img = _img(rewrite_html(image_html, config))
        assert img["srcset"] == (
            "https://example.com/cdn-cgi/image/f=auto/image.jpg 1x, "
            "https://example.com/cdn-cgi/image/f=auto,w=200/image.jpg 2x"
        )
        assert img["src"] == IMAGE_URL

    def test_sizes_list(self, image_html: str) -> None:
        config = define_options(sizes_options_list=["(max-width: 600px) 100vw", "50vw"])
        assert _img(rewrite_html(image_html, config))["sizes"] == "(max-width: 600px) 100vw, 50vw"

    def test_sizes_string(self, image_html: str) -> None:
        config = define_options(sizes_options_list="100vw")
        assert _img(rewrite_html(image_html, config))["sizes"] == "100vw"

    def test_style_is_set(self, image_html: str) -> None:
        config = define_options(style="width: 100%")
        assert _img(rewrite_html(image_html, config))["style"] == "width: 100%"

    def test_style_is_appended(self) -> None:
        html = f'<img src="{IMAGE_URL}" style="width: 100%;">'
        config = define_options(style="height: auto;")
        assert _img(rewrite_html(html, config))["style"] == "width: 100%; height: auto;"

    def test_style_applied_twice_keeps_prior_value(self) -> None:
        html = f'<img src="{IMAGE_URL}" style="width: 100%;">'
        rewriter = ImageRewriter(define_options(style="height: auto;"))
        result = rewriter.rewrite_html(rewriter.rewrite_html(html))
        assert _img(result)["style"] == "width: 100%; height: auto; height: auto;"

    def test_foreign_result_origin(self, image_html: str) -> None:
        config = define_options(optimize_src_options={"result_origin": "https://cdn.example.net"})
        assert _img(rewrite_html(image_html, config))["src"] == (
            "https://cdn.example.net/cdn-cgi/image/f=auto/https://example.com/image.jpg"
        )

    def test_all_attributes_together(self, image_html: str) -> None:
        config = define_options(
            optimize_src_options={"options": ["f=auto", "w=320"]},
            srcset_options_list=[("w=320", "320w"), ("w=640", "640w")],
            sizes_options_list=["(max-width: 640px) 100vw", "640px"],
            style="max-width: 100%",
        )
        img = _img(rewrite_html(image_html, config))
        assert img["src"] == "https://example.com/cdn-cgi/image/f=auto,w=320/image.jpg"
        assert img["srcset"] == (
            "https://example.com/cdn-cgi/image/f=auto,w=320/image.jpg 320w, "
            "https://example.com/cdn-cgi/image/f=auto,w=640/image.jpg 640w"
        )
        assert img["sizes"] == "(max-width: 640px) 100vw, 640px"
        assert img["style"] == "max-width: 100%"

    def test_non_image_elements_are_ignored(self) -> None:
        html = f'<a href="{IMAGE_URL}" src="{IMAGE_URL}">x</a>'
        result = rewrite_html(html, define_options(optimize_src_options={}))
        a = BeautifulSoup(result, "html.parser").find("a")
        assert a["src"] == IMAGE_URL

    def test_srcset_candidates_have_no_raw_spaces(self) -> None:
        html = '<img src="https://example.com/my photo.jpg">'
        config = define_options(srcset_options_list=[({}, "1x"), ("w=2", "2x")])
        assert _img(rewrite_html(html, config))["srcset"] == (
            "https://example.com/cdn-cgi/image/f=auto/my%20photo.jpg 1x, "
            "https://example.com/cdn-cgi/image/f=auto,w=2/my%20photo.jpg 2x"
        )

    def test_internationalized_origin_matches_punycode(self) -> None:
        html = '<img src="https://b\u00fccher.example/a.jpg">'
        config = define_options(
            origin_validation="https://xn--bcher-kva.example",
            optimize_src_options={},
        )
        assert _img(rewrite_html(html, config))["src"] == (
            "https://xn--bcher-kva.example/cdn-cgi/image/f=auto/a.jpg"
        )

    def test_custom_callable_provider(self, image_html: str) -> None:
        def provider(original_link, options):
            return f"https://resizer.test/{options['width']}/{original_link}"

        config = define_options(provider=provider, optimize_src_options={"width": 300})
        assert _img(rewrite_html(image_html, config))["src"] == (
            f"https://resizer.test/300/{IMAGE_URL}"
        )

    def test_registered_custom_provider(self, image_html: str, custom_provider: str) -> None:
        config = define_options(provider=custom_provider, optimize_src_options="w=1")
        assert _img(rewrite_html(image_html, config))["src"] == (
            f"https://img.test/w=1?u={IMAGE_URL}"
        )

    def test_custom_provider_errors_propagate(self, image_html: str) -> None:
        def provider(original_link, options):
            raise RuntimeError("provider failed")

        config = define_options(provider=provider, optimize_src_options={})
        with pytest.raises(RuntimeError, match="provider failed"):
            rewrite_html(image_html, config)


class TestSkipping:
    """Tests for elements that must not be mutated."""

    def test_missing_src(self) -> None:
        html = '<img alt="none">'
        result = rewrite_html(html, define_options(optimize_src_options={}, style="a: b"))
        assert _img(result).attrs == {"alt": "none"}

    def test_invalid_src_is_left_alone(self, caplog: pytest.LogCaptureFixture) -> None:
        html = '<img src="invalid-url"><img src="https://example.com/ok.png">'
        config = define_options(optimize_src_options={}, style="width: 1px")
        with caplog.at_level(logging.WARNING, logger="image_cdn"):
            result = rewrite_html(html, config)
        first, second = BeautifulSoup(result, "html.parser").find_all("img")
        assert first.attrs == {"src": "invalid-url"}
        assert second["src"] == "https://example.com/cdn-cgi/image/f=auto/ok.png"
        assert "invalid-url" in caplog.text

    def test_non_matching_origin_string(self, image_html: str) -> None:
        config = define_options(origin_validation="https://other.com", optimize_src_options={})
        assert _img(rewrite_html(image_html, config))["src"] == IMAGE_URL

    def test_matching_origin_string(self, image_html: str) -> None:
        config = define_options(origin_validation="https://example.com", optimize_src_options={})
        assert _img(rewrite_html(image_html, config))["src"] == (
            "https://example.com/cdn-cgi/image/f=auto/image.jpg"
        )

    def test_origin_pattern(self) -> None:
        html = '<img src="https://a.example.com/x.png"><img src="https://evil.test/x.png">'
        config = define_options(
            origin_validation=re.compile(r"^https://[a-z]+\.example\.com$"),
            optimize_src_options={},
        )
        first, second = BeautifulSoup(rewrite_html(html, config), "html.parser").find_all("img")
        assert first["src"] == "https://a.example.com/cdn-cgi/image/f=auto/x.png"
        assert second["src"] == "https://evil.test/x.png"

    def test_origin_predicate(self, image_html: str) -> None:
        seen = []

        def allow(origin: str) -> bool:
            seen.append(origin)
            return False

        config = define_options(origin_validation=allow, optimize_src_options={})
        assert _img(rewrite_html(image_html, config))["src"] == IMAGE_URL
        assert seen == ["https://example.com"]


class TestRelativeSources:
    """Tests for src values without a host."""

    def test_relative_without_base_is_skipped(self) -> None:
        html = '<img src="/images/a.jpg">'
        result = rewrite_html(html, define_options(optimize_src_options={}))
        assert _img(result)["src"] == "/images/a.jpg"

    def test_root_relative_with_base_is_path_only(self) -> None:
        html = '<img src="/images/a.jpg">'
        config = define_options(optimize_src_options={}, base_url="https://example.com/blog/")
        assert _img(rewrite_html(html, config))["src"] == "/cdn-cgi/image/f=auto/images/a.jpg"

    def test_document_relative_with_base(self) -> None:
        html = '<img src="a.jpg">'
        config = define_options(
            optimize_src_options={},
            origin_validation="https://example.com",
            base_url="https://example.com/blog/post/",
        )
        assert _img(rewrite_html(html, config))["src"] == "/cdn-cgi/image/f=auto/blog/post/a.jpg"

    def test_protocol_relative_with_base(self) -> None:
        html = '<img src="//static.example.com/a.jpg">'
        config = define_options(optimize_src_options={}, base_url="https://example.com/")
        assert _img(rewrite_html(html, config))["src"] == (
            "https://static.example.com/cdn-cgi/image/f=auto/a.jpg"
        )


class TestConfiguration:
    """Tests for setup-time validation."""

    def test_invalid_origin_validation_type(self) -> None:
        with pytest.raises(ConfigurationError, match="origin_validation"):
            RewriteConfig(origin_validation=42)  # type: ignore[arg-type]

    def test_build_origin_validator_rejects_unknown_type(self) -> None:
        with pytest.raises(ConfigurationError):
            build_origin_validator(["https://example.com"])  # type: ignore[arg-type]

    def test_unknown_provider_fails_before_rewriting(self) -> None:
        with pytest.raises(ConfigurationError, match="missing"):
            ImageRewriter(define_options(provider="missing"))

    def test_invalid_provider_options_fail_at_setup(self) -> None:
        with pytest.raises(ConfigurationError):
            ImageRewriter(define_options(optimize_src_options={"wdth": 10}))

    def test_invalid_srcset_entry(self) -> None:
        with pytest.raises(ConfigurationError):
            define_options(srcset_options_list=[({}, "1x", "extra")])

    def test_invalid_sizes_entry(self) -> None:
        with pytest.raises(ConfigurationError):
            define_options(sizes_options_list=["100vw", 5])

    def test_unknown_keyword(self) -> None:
        with pytest.raises(ConfigurationError):
            define_options(optimise_src_options={})

    @pytest.mark.parametrize("base_url", ["/blog/", "example.com", "not a url"])
    def test_base_url_must_be_absolute(self, base_url: str) -> None:
        with pytest.raises(ConfigurationError, match="base_url"):
            define_options(base_url=base_url)

    def test_non_callable_provider(self) -> None:
        with pytest.raises(ConfigurationError):
            define_options(provider=3)


class TestPlanMutations:
    """Tests for the tree-independent policy entry point."""

    def test_returns_none_for_skipped_element(self) -> None:
        rewriter = ImageRewriter(define_options(optimize_src_options={}))
        assert rewriter.plan_mutations({"src": "not a url"}) is None

    def test_empty_mutations_when_nothing_configured(self) -> None:
        rewriter = ImageRewriter(define_options())
        mutations = rewriter.plan_mutations({"src": IMAGE_URL})
        assert mutations is not None
        assert not mutations
        assert mutations.as_dict() == {}

    def test_plain_mapping_input(self) -> None:
        rewriter = ImageRewriter(define_options(optimize_src_options="w=50", style="x: y"))
        mutations = rewriter.plan_mutations({"src": IMAGE_URL, "style": "a: b"})
        assert mutations.as_dict() == {
            "src": "https://example.com/cdn-cgi/image/f=auto,w=50/image.jpg",
            "style": "a: b x: y",
        }

    def test_rewrite_tree_counts_changed_elements(self) -> None:
        soup = BeautifulSoup(
            f'<p><img src="{IMAGE_URL}"><img><img src="bad"></p>', "html.parser"
        )
        rewriter = ImageRewriter(define_options(optimize_src_options={}))
        assert rewriter(soup) == 1
