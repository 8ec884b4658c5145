from histfetch.workflows.extract_utils import extract_readable_text
from histfetch.workflows.html_normalize import decode_bytes_auto


def test_extract_drops_scripts_styles_and_title():
    html = """
    <html><head><title>  My   Page </title><style>body { color: red }</style></head>
    <body><script>var x = 1;</script><h1>Hello</h1><!-- hidden --><p>world   text</p></body></html>
    """
    extracted = extract_readable_text(html)
    assert extracted.title == "My Page"
    assert extracted.content == "Hello world text"


def test_extract_without_title():
    extracted = extract_readable_text("<p>only body</p>")
    assert extracted.title is None
    assert extracted.content == "only body"


def test_extract_empty_document():
    extracted = extract_readable_text("")
    assert extracted.title is None
    assert extracted.content == ""


def test_decode_uses_header_charset():
    body = "naïve".encode("latin-1")
    assert decode_bytes_auto(body, {"Content-Type": "text/html; charset=ISO-8859-1"}) == "naïve"


def test_decode_falls_back_on_unknown_charset():
    body = "plain ascii".encode("ascii")
    assert decode_bytes_auto(body, {"Content-Type": "text/html; charset=bogus-42"}) == "plain ascii"
