from modules.closure import links


def test_match_link_strips_single_trailing_period():
    text = "see https://oracle.uma.xyz/?transactionHash=0xabc&eventIndex=2."
    assert links.match_link(text) == "https://oracle.uma.xyz/?transactionHash=0xabc&eventIndex=2"


def test_match_link_keeps_double_period():
    assert links.match_link("https://snapshot.org/path..") == "https://snapshot.org/path.."


def test_match_link_ignores_unrecognised_domains():
    assert links.match_link("https://example.com/oracle.uma.xyz") == ""


def test_find_link_prefers_embeds_over_content(make_embed):
    embed = make_embed(description="market https://polymarket.com/event/foo")
    found = links.find_link("content https://snapshot.org/#/bar", [embed])
    assert found == "https://polymarket.com/event/foo"


def test_find_link_checks_embed_url_before_fields(make_embed):
    embed = make_embed(
        url="https://oracle.uma.xyz/a",
        fields=["https://oracle.uma.xyz/b"],
    )
    assert links.find_link("", [embed]) == "https://oracle.uma.xyz/a"


def test_find_link_falls_back_to_embed_fields(make_embed):
    embed = make_embed(fields=["nothing", "https://www.polymarket.com/event/x"])
    assert links.find_link("", [embed]) == "https://www.polymarket.com/event/x"


def test_find_link_in_messages_returns_first_hit(make_message):
    messages = [
        make_message("no link here"),
        make_message("https://oracle.uma.xyz/first"),
        make_message("https://oracle.uma.xyz/second"),
    ]
    assert links.find_link_in_messages(messages) == "https://oracle.uma.xyz/first"


def test_parse_event_reference_from_query_and_fragment():
    assert links.parse_event_reference(
        "https://oracle.uma.xyz/?transactionHash=0xABC&eventIndex=7"
    ) == ("0xABC", "7")
    assert links.parse_event_reference(
        "https://oracle.uma.xyz/#/request?transactionHash=0xdef&eventIndex=1"
    ) == ("0xdef", "1")
    assert links.parse_event_reference("https://snapshot.org/#/space") == ("", "")
    assert links.parse_event_reference(None) == ("", "")
