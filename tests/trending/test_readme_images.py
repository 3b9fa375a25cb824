from __future__ import annotations

from app.crawlers.readme import extract_first_image, is_image_url, resolve_image_url

RAW = "https://raw.githubusercontent.com"


def _extract(content: str, branch: str = "main") -> str | None:
    return extract_first_image(content, owner="acme", repo="rocket", branch=branch, raw_base=RAW)


def test_relative_image_resolves_against_raw_branch_base() -> None:
    content = "# Rocket\n\n![logo](./docs/logo.png)\n"

    assert _extract(content) == f"{RAW}/acme/rocket/main/docs/logo.png"


def test_first_image_in_document_order_wins_across_syntaxes() -> None:
    content = (
        '<p align="center"><img src="assets/banner.svg" width="400"></p>\n'
        "![shot](https://example.com/screenshot.png)\n"
    )

    assert _extract(content, branch="master") == f"{RAW}/acme/rocket/master/assets/banner.svg"


def test_reference_style_image_definition_is_supported() -> None:
    content = "![demo][demo]\n\n[demo]: /media/demo.gif\n"

    assert _extract(content) == f"{RAW}/acme/rocket/main/media/demo.gif"


def test_non_image_and_unresolvable_urls_are_skipped() -> None:
    content = (
        "![badge](data:image/png;base64,AAAA)\n"
        "![anchor](#install)\n"
        "![ci](https://github.com/acme/rocket/actions/workflows/ci.yml)\n"
        "![arch](https://cdn.example.com/arch.webp?v=2)\n"
    )

    assert _extract(content) == "https://cdn.example.com/arch.webp?v=2"


def test_readme_without_images_yields_none() -> None:
    assert _extract("# Rocket\n\nNo pictures here, see [docs](docs/README.md).") is None
    assert _extract("") is None


def test_uploaded_assets_without_extension_are_images() -> None:
    assert is_image_url("https://github.com/user-attachments/assets/3f1c0a2e-1111")
    assert is_image_url("https://user-images.githubusercontent.com/1/2")
    assert not is_image_url("https://github.com/acme/rocket/blob/main/LICENSE")


def test_protocol_relative_and_foreign_schemes() -> None:
    assert (
        resolve_image_url("//cdn.example.com/a.png", owner="acme", repo="rocket", branch="main", raw_base=RAW)
        == "https://cdn.example.com/a.png"
    )
    assert resolve_image_url("ftp://host/a.png", owner="acme", repo="rocket", branch="main", raw_base=RAW) is None
    assert (
        resolve_image_url("../images/a.jpg", owner="acme", repo="rocket", branch="dev", raw_base=RAW)
        == f"{RAW}/acme/rocket/dev/images/a.jpg"
    )
