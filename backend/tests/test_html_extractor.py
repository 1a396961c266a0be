from bizcontacts.extraction.html_extractor import base_confidence, extract_from_html


def by_value(result):
    best = {}
    for item in result.contacts:
        if item.value not in best or item.confidence > best[item.value].confidence:
            best[item.value] = item
    return best


def test_footer_mailto_is_tagged_footer():
    html = """
    <html><body>
      <main><h1>Welcome</h1></main>
      <footer><a href="mailto:info@example.com">Email us</a></footer>
    </body></html>
    """
    found = by_value(extract_from_html(html, "https://cafe.gr/", "GR"))
    item = found["info@example.com"]
    assert item.contact_type == "email"
    assert item.region == "footer"
    assert item.confidence == 0.7


def test_jsonld_business_contacts():
    html = """
    <html><head><script type="application/ld+json">
    {"@context": "https://schema.org", "@type": "LocalBusiness", "name": "Cafe",
     "email": "hello@cafe.gr", "telephone": "+30 210 322 7811"}
    </script></head><body></body></html>
    """
    found = by_value(extract_from_html(html, "https://cafe.gr/", "GR"))
    assert found["hello@cafe.gr"].confidence == 0.95
    assert found["+302103227811"].region == "structured-data"


def test_obfuscated_text_and_phone_on_contact_page():
    html = """
    <html><body>
      <div class="content">
        <p>Γράψτε μας: sales [at] cafe [dot] gr</p>
        <p>Τηλέφωνο: 210 322 7811</p>
      </div>
    </body></html>
    """
    found = by_value(extract_from_html(html, "https://cafe.gr/epikoinonia", "GR"))
    assert found["sales@cafe.gr"].confidence == 1.0
    assert found["+302103227811"].confidence == 0.9


def test_tel_link_in_header_and_data_attributes():
    html = """
    <html><body>
      <header><a href="tel:+302103227811">Call</a></header>
      <div data-email="orders@cafe.gr"></div>
      <form class="contact-form" action="/send"><input type="email" placeholder="you@cafe.gr"></form>
    </body></html>
    """
    found = by_value(extract_from_html(html, "https://cafe.gr/", "GR"))
    assert found["+302103227811"].region == "header"
    assert "orders@cafe.gr" in found
    assert found["you@cafe.gr"].region == "contact-form"


def test_scripts_are_ignored_and_foreign_numbers_dropped():
    html = """
    <html><body>
      <script>var x = "tracker@sentry.io";</script>
      <p>London office: +44 20 7946 0958</p>
    </body></html>
    """
    result = extract_from_html(html, "https://cafe.gr/", "GR")
    assert result.contacts == []


def test_social_links_are_collected():
    html = """
    <html><body><footer>
      <a href="https://www.facebook.com/cafeomega/?ref=page">fb</a>
      <a href="https://www.facebook.com/sharer/sharer.php?u=x">share</a>
      <a href="https://instagram.com/cafe.omega/">ig</a>
    </footer></body></html>
    """
    result = extract_from_html(html, "https://cafe.gr/", "GR")
    assert result.social == {
        "facebook": "https://www.facebook.com/cafeomega",
        "instagram": "https://www.instagram.com/cafe.omega",
    }


def test_base_confidence_by_page_and_region():
    assert base_confidence("https://cafe.gr/contact-us", "body") == 0.9
    assert base_confidence("https://cafe.gr/privacy-policy", "body") == 0.3
    assert base_confidence("https://cafe.gr/", "footer") == 0.6
    assert base_confidence("https://cafe.gr/", "body") == 0.5
