"""Tests for the BeautifulSoup gallery adapter."""

from __future__ import annotations

from gallery import HIDDEN_CLASS, SoupGallery

DEBUT = """
<div class="product-single__photos">
  <div class="product-single__photo-wrapper" id="w1">
    <img data-src="//cdn.shopify.com/s/files/1/files/black-front_{width}x.jpg?v=1" src="data:image/gif;base64,R0lGOD">
  </div>
  <div class="product-single__photo-wrapper" id="w2" style="max-width: 600px">
    <img srcset="//cdn.shopify.com/s/files/1/files/red-front_360x.jpg 360w, //cdn.shopify.com/s/files/1/files/red-front_720x.jpg 720w">
  </div>
</div>
<ul class="product-single__thumbnails">
  <li><img src="//cdn.shopify.com/s/files/1/files/black-front_160x160.jpg"></li>
</ul>
"""


class TestFindElements:
    def test_dawn_items_and_thumbnails(self, dawn_page) -> None:
        gallery = SoupGallery.from_html(dawn_page(None))
        items = gallery.find_items()
        assert len(items) == 4
        assert gallery.gallery_selector == ".product__media-list .product__media-item"
        assert len(gallery.find_thumbnails()) == 4

    def test_debut_items(self) -> None:
        gallery = SoupGallery.from_html(DEBUT)
        assert [tag["id"] for tag in gallery.find_items()] == ["w1", "w2"]
        assert gallery.gallery_selector == ".product-single__photos .product-single__photo-wrapper"
        assert len(gallery.find_thumbnails()) == 1

    def test_no_gallery(self) -> None:
        gallery = SoupGallery.from_html("<div><p>No images</p></div>")
        assert gallery.find_items() == []
        assert gallery.gallery_selector is None


class TestImageSrc:
    def test_src_preferred(self, dawn_page) -> None:
        gallery = SoupGallery.from_html(dawn_page(None))
        assert "black-front_800x.jpg" in gallery.get_image_src(gallery.find_items()[0])

    def test_lazy_and_srcset(self) -> None:
        gallery = SoupGallery.from_html(DEBUT.replace("data:image/gif;base64,R0lGOD", ""))
        first, second = gallery.find_items()
        assert gallery.get_image_src(first).startswith("//cdn.shopify.com/s/files/1/files/black-front_")
        assert gallery.get_image_src(second) == "//cdn.shopify.com/s/files/1/files/red-front_360x.jpg"

    def test_element_without_img(self) -> None:
        gallery = SoupGallery.from_html('<ul class="product-gallery"><li>video</li></ul>')
        assert gallery.get_image_src(gallery.find_items()[0]) == ""


class TestVisibility:
    """Tests for hiding and re-showing markup."""

    def test_hide_then_show_restores_markup(self) -> None:
        gallery = SoupGallery.from_html(DEBUT)
        element = gallery.find_items()[1]

        gallery.set_visible(element, False)
        assert not gallery.is_visible(element)
        assert HIDDEN_CLASS in element["class"]
        assert element["aria-hidden"] == "true"
        assert "display: none" in element["style"]
        assert "max-width: 600px" in element["style"]

        gallery.set_visible(element, True)
        assert gallery.is_visible(element)
        assert element["class"] == ["product-single__photo-wrapper"]
        assert not element.has_attr("aria-hidden")
        assert element["style"] == "max-width: 600px;"

    def test_hide_twice_is_stable(self, dawn_page) -> None:
        gallery = SoupGallery.from_html(dawn_page(None))
        element = gallery.find_items()[0]
        gallery.set_visible(element, False)
        gallery.set_visible(element, False)
        assert element["class"].count(HIDDEN_CLASS) == 1
        assert element["style"] == "display: none;"

    def test_activate_moves_aria_current(self, dawn_page) -> None:
        gallery = SoupGallery.from_html(dawn_page(None))
        items = gallery.find_items()
        assert gallery.active_item() is items[0]

        gallery.activate(items[2])
        assert gallery.active_item() is items[2]
        assert not items[0].has_attr("aria-current")
