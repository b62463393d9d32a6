"""Tests for the structure-preserving HTML to text pipeline."""

from jsonld_engine.structure import (
    count_markers,
    extract_star_rating,
    mark_faqs,
    mark_testimonials,
    strip_noise,
    to_plain_text,
    to_structured_text,
    _soup,
)


class TestNoiseAndHeadings:
    def test_empty_input(self):
        """Empty or whitespace-only markup yields an empty string."""
        assert to_structured_text("") == ""
        assert to_structured_text("   \n ") == ""

    def test_scripts_and_forms_removed(self):
        """Scripts, styles and forms disappear along with their contents."""
        html = "<p>Hello</p><script>var x = 1;</script><style>p{}</style><form><input></form>"
        result = strip_noise(html)
        assert "var x" not in result
        assert "<form" not in result
        assert "Hello" in result

    def test_headings_become_markers(self):
        """Headings are rewritten to ## [text] ## markers."""
        text = to_structured_text("<h2>Our Services</h2><p>We fix roofs.</p>")
        assert "## [Our Services] ##" in text
        assert "We fix roofs." in text


class TestLists:
    def test_unordered_list(self):
        """Lists are wrapped in START/END markers with dash items."""
        text = to_structured_text("<ul><li>Repairs</li><li>Inspections</li></ul>")
        assert "[LIST START]" in text
        assert "- Repairs" in text
        assert "- Inspections" in text
        assert "[LIST END]" in text

    def test_ordered_list(self):
        text = to_structured_text("<ol><li>Call us</li><li>Get a quote</li></ol>")
        assert "[NUMBERED LIST START]" in text
        assert "[NUMBERED LIST END]" in text


class TestTestimonials:
    def test_testimonial_block(self):
        """A testimonial div becomes a block with quote, author and rating."""
        html = (
            '<div class="testimonial">'
            '<p class="testimonial-text">They replaced our whole roof in two days, flawless work.</p>'
            '<span class="author">Jane Doe</span>'
            '<div data-rating="5"></div>'
            "</div>"
        )
        text = to_structured_text(html)
        assert "[TESTIMONIAL START]" in text
        assert "Quote: They replaced our whole roof in two days, flawless work." in text
        assert "Author: Jane Doe" in text
        assert "Rating: 5/5" in text
        assert "[TESTIMONIAL END]" in text

    def test_wrapper_keeps_every_item(self):
        """A container of several testimonials yields one block per item."""
        item = (
            '<div class="testimonial-item"><p class="testimonial-text">{}</p>'
            '<cite>{}</cite></div>'
        )
        html = (
            '<section class="testimonials">'
            + item.format("Excellent service from start to finish, highly recommended.", "Ann")
            + item.format("Quick response and a fair price for the repair work.", "Bob")
            + "</section>"
        )
        text = to_structured_text(html)
        assert count_markers(text)["testimonials"] == 2

    def test_blockquote_becomes_quote(self):
        html = "<blockquote>Quality is never an accident, it is always effort.<cite>John Ruskin</cite></blockquote>"
        result = mark_testimonials(html)
        assert "[QUOTE START]" in result
        assert "Attribution: John Ruskin" in result

    def test_short_blockquote_left_alone(self):
        assert "[QUOTE START]" not in mark_testimonials("<blockquote>Too short</blockquote>")


class TestStarRating:
    def test_filled_star_classes(self):
        """Filled star icons are counted."""
        tag = _soup('<div><i class="fas fa-star"></i><i class="fas fa-star"></i><i class="fas fa-star"></i></div>').div
        assert extract_star_rating(tag) == "3/5 stars"

    def test_rating_text(self):
        tag = _soup("<div>Rated 4.5 out of 5</div>").div
        assert extract_star_rating(tag) == "4.5/5"

    def test_no_rating(self):
        tag = _soup("<div>No stars here</div>").div
        assert extract_star_rating(tag) == ""


class TestFaqs:
    def test_details_summary(self):
        """<details>/<summary> pairs become FAQ items."""
        html = "<details><summary>Do you offer warranties?</summary><p>Yes, ten years on all work.</p></details>"
        result = mark_faqs(html)
        assert "Question: Do you offer warranties?" in result
        assert "Answer: Yes, ten years on all work." in result

    def test_accordion_item(self):
        html = (
            '<div class="faq-item"><div class="faq-question">How long does a repair take?</div>'
            '<div class="faq-answer">Most repairs are done within a day.</div></div>'
        )
        text = to_structured_text(html)
        assert "[FAQ ITEM START]" in text
        assert "Question: How long does a repair take?" in text
        assert "Answer: Most repairs are done within a day." in text

    def test_faq_needs_an_answer(self):
        """A question with no answer is not marked."""
        html = '<div class="faq-item"><div class="faq-question">Why?</div></div>'
        assert "[FAQ ITEM START]" not in mark_faqs(html)


class TestRegionsAndLinks:
    def test_regions_labelled(self):
        text = to_structured_text("<footer><p>Copyright Acme</p></footer>")
        assert "[FOOTER]" in text
        assert "[/FOOTER]" in text

    def test_emphasis(self):
        text = to_structured_text("<p><strong>Free</strong> <em>estimates</em></p>")
        assert "**Free**" in text
        assert "*estimates*" in text

    def test_useful_links_keep_url(self):
        """mailto, tel and absolute links keep their target, relative ones do not."""
        text = to_structured_text(
            '<p><a href="mailto:hi@acme.test">Email us</a> or <a href="/contact">contact page</a></p>'
        )
        assert "Email us (mailto:hi@acme.test)" in text
        assert "contact page" in text
        assert "/contact" not in text

    def test_whitespace_collapsed(self):
        text = to_structured_text("<p>One</p>\n\n\n\n<p>Two</p>")
        assert "\n\n\n" not in text


class TestPlainText:
    def test_plain_text_single_line(self):
        assert to_plain_text("<h1>Title</h1>\n<p>Body   text</p>") == "Title Body text"

    def test_count_markers(self):
        text = "[TESTIMONIAL START]\n[TESTIMONIAL START]\n[FAQ ITEM START]"
        assert count_markers(text) == {"testimonials": 2, "quotes": 0, "faqs": 1}
