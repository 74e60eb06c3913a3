"""Tests for catalog extraction and episode discovery over static HTML."""

from bs4 import BeautifulSoup

from conftest import CATALOG_HTML, EPISODES_HTML
from extraction import (
    absolute_url,
    clean_episode_title,
    drop_outlier_numbers,
    extract_catalog,
    extract_episodes,
    first_value,
    infer_episode_number,
    number_from_title,
    parse_episode_count,
    select_elements,
)
from models import EpisodeEntry, SelectorSpec
from sites import DEFAULT_EPISODE_SELECTORS, DEFAULT_SITES

SITE = DEFAULT_SITES[0]
PAGE_URL = "https://site.example/list"


# ---------------------------------------------------------------------------
# URL resolution
# ---------------------------------------------------------------------------

class TestAbsoluteUrl:
    def test_root_relative_link_resolves_against_origin(self):
        assert absolute_url("/watch/12", PAGE_URL) == "https://site.example/watch/12"

    def test_protocol_relative_link_gets_page_scheme(self):
        assert absolute_url("//cdn.example/a.mp4", PAGE_URL) == "https://cdn.example/a.mp4"

    def test_absolute_link_is_kept(self):
        assert absolute_url("http://other.example/x", PAGE_URL) == "http://other.example/x"

    def test_unusable_links_become_empty(self):
        for href in ("", "#top", "javascript:void(0)", "mailto:a@b.c"):
            assert absolute_url(href, PAGE_URL) == ""

    def test_non_http_schemes_become_empty(self):
        for href in ("blob:https://site.example/1234", "ftp://files.example/a.mp4", "intent://play"):
            assert absolute_url(href, PAGE_URL) == ""


# ---------------------------------------------------------------------------
# Selector interpreter
# ---------------------------------------------------------------------------

class TestSelectorInterpreter:
    def test_first_selector_with_matches_wins(self):
        soup = BeautifulSoup('<div class="card">a</div><div class="item">b</div><div class="item">c</div>',
                             "html.parser")
        found = select_elements(soup, [".missing", ".item", ".card"])
        assert [el.get_text() for el in found] == ["b", "c"]

    def test_invalid_selector_is_skipped(self):
        soup = BeautifulSoup('<div class="item">b</div>', "html.parser")
        assert len(select_elements(soup, ["div[", ".item"])) == 1

    def test_attribute_used_when_text_is_empty(self):
        soup = BeautifulSoup('<div><a title="Naruto Shippuden" href="/n"></a></div>', "html.parser")
        specs = [SelectorSpec(selector="a", attrs=["title"])]
        assert first_value(soup.div, specs) == "Naruto Shippuden"

    def test_transform_rejects_candidate(self):
        soup = BeautifulSoup('<div><a href="#">x</a><span><a href="/ok">y</a></span></div>', "html.parser")
        specs = [
            SelectorSpec(selector="a", attrs=["href"], text=False),
            SelectorSpec(selector="span a", attrs=["href"], text=False),
        ]
        assert first_value(soup.div, specs, transform=lambda v: absolute_url(v, PAGE_URL)) == \
            "https://site.example/ok"


# ---------------------------------------------------------------------------
# Catalog extraction
# ---------------------------------------------------------------------------

class TestCatalogExtraction:
    def test_valid_cards_only(self):
        entries = extract_catalog(CATALOG_HTML, PAGE_URL, SITE)
        assert [e.title for e in entries] == ["Naruto", "One Piece"]
        for entry in entries:
            assert len(entry.title) > 1
            assert entry.url.startswith(("http://", "https://"))
            assert entry.site_id == SITE.id

    def test_fields_of_first_card(self):
        naruto = extract_catalog(CATALOG_HTML, PAGE_URL, SITE)[0]
        assert naruto.id == f"{SITE.id}-1"
        assert naruto.url == "https://site.example/anime/naruto"
        assert naruto.thumbnail == "https://site.example/img/naruto.jpg"
        assert naruto.total_episodes == 220
        assert naruto.genres == ["Ação", "Aventura", "Comédia", "Drama", "Fantasia"]

    def test_missing_optional_fields(self):
        one_piece = extract_catalog(CATALOG_HTML, PAGE_URL, SITE)[1]
        assert one_piece.thumbnail == ""
        assert one_piece.total_episodes is None
        assert one_piece.genres == []
        assert one_piece.status == "available"

    def test_item_cap(self):
        cards = "".join(f'<div class="anime-item"><a href="/a/{i}"><h3>Anime {i}</h3></a></div>' for i in range(30))
        assert len(extract_catalog(cards, PAGE_URL, SITE)) == 20

    def test_no_matching_containers(self):
        assert extract_catalog("<html><body><p>nothing</p></body></html>", PAGE_URL, SITE) == []

    def test_serialized_with_camel_case_aliases(self):
        payload = extract_catalog(CATALOG_HTML, PAGE_URL, SITE)[0].model_dump(by_alias=True)
        assert payload["siteId"] == SITE.id
        assert payload["totalEpisodes"] == 220


class TestEpisodeCount:
    def test_count_forms(self):
        assert parse_episode_count("220 episódios") == 220
        assert parse_episode_count("Episodes: 24") == 24
        assert parse_episode_count("Ep 1-12") == 12
        assert parse_episode_count("5/12 eps") == 12

    def test_text_without_episode_keyword(self):
        assert parse_episode_count("2023") is None
        assert parse_episode_count("Temporada 2") is None

    def test_out_of_range(self):
        assert parse_episode_count("999 episodes") is None


# ---------------------------------------------------------------------------
# Episode discovery
# ---------------------------------------------------------------------------

class TestEpisodeNumbers:
    def test_title_forms(self):
        assert number_from_title("Episódio 7 - O Confronto") == 7
        assert number_from_title("EP. 12") == 12
        assert number_from_title("Naruto 45") == 45
        assert number_from_title("3 - The Return") == 3

    def test_explicit_attribute_wins_over_title(self):
        soup = BeautifulSoup('<li class="episode" data-episode="15"><a href="/w">Episódio 4</a></li>', "html.parser")
        assert infer_episode_number(soup.li, DEFAULT_EPISODE_SELECTORS, "Episódio 4", 1) == 15

    def test_position_is_last_resort(self):
        soup = BeautifulSoup('<li class="episode"><a href="/w">Prólogo</a></li>', "html.parser")
        assert infer_episode_number(soup.li, DEFAULT_EPISODE_SELECTORS, "Prólogo", 4) == 4

    def test_clean_title(self):
        assert clean_episode_title("Episódio 7 - O Confronto", 7) == "O Confronto"
        assert clean_episode_title("Episódio 3", 3) == "Episode 3"


class TestEpisodeExtraction:
    def test_sorted_unique_numbers(self):
        episodes = extract_episodes(EPISODES_HTML, "https://site.example/anime/naruto", "animesdigital-1",
                                    "animesdigital", DEFAULT_EPISODE_SELECTORS)
        numbers = [ep.number for ep in episodes]
        assert numbers == sorted(numbers)
        assert numbers == [1, 2, 3, 7]

    def test_episode_fields(self):
        episodes = extract_episodes(EPISODES_HTML, "https://site.example/anime/naruto", "animesdigital-1",
                                    "animesdigital", DEFAULT_EPISODE_SELECTORS)
        seventh = episodes[-1]
        assert seventh.title == "O Confronto"
        assert seventh.url == "https://site.example/watch/naruto-7"
        assert seventh.id == "animesdigital-animesdigital-1-ep-7"
        assert seventh.anime_id == "animesdigital-1"

    def test_duplicate_number_keeps_shorter_url(self):
        episodes = extract_episodes(EPISODES_HTML, "https://site.example/anime/naruto", "a", "s",
                                    DEFAULT_EPISODE_SELECTORS)
        second = next(ep for ep in episodes if ep.number == 2)
        assert second.url == "https://site.example/watch/naruto-2"

    def test_relative_watch_link(self):
        html = '<div class="episode"><a href="/watch/12">Episódio 12</a></div>'
        episodes = extract_episodes(html, PAGE_URL, "a", "s", DEFAULT_EPISODE_SELECTORS)
        assert episodes[0].url == "https://site.example/watch/12"
        assert episodes[0].number == 12

    def test_no_episode_elements(self):
        assert extract_episodes("<html></html>", PAGE_URL, "a", "s", DEFAULT_EPISODE_SELECTORS) == []

    def test_stray_year_number_is_dropped(self):
        html = """
            <li class="episode"><a href="/watch/1">Episódio 1</a></li>
            <li class="episode"><a href="/watch/2">Episódio 2</a></li>
            <li class="episode"><a href="/watch/3">Episódio 3</a></li>
            <li class="episode"><a href="/watch/special">Episódio 2019</a></li>
        """
        episodes = extract_episodes(html, PAGE_URL, "a", "s", DEFAULT_EPISODE_SELECTORS)
        assert [ep.number for ep in episodes] == [1, 2, 3]


def _episodes(*numbers):
    return [EpisodeEntry(id=f"s-a-ep-{n}", anime_id="a", site_id="s", number=n, title=f"Episode {n}",
                         url=f"https://site.example/watch/{n}") for n in numbers]


class TestOutlierFilter:
    def test_tight_list_is_untouched(self):
        assert [ep.number for ep in drop_outlier_numbers(_episodes(1, 2, 3, 7))] == [1, 2, 3, 7]

    def test_far_numbers_dropped_around_median(self):
        kept = drop_outlier_numbers(_episodes(1, 2, 3, 4, 5, 1080))
        assert [ep.number for ep in kept] == [1, 2, 3, 4, 5]

    def test_wide_spread_within_distance_is_kept(self):
        # spread 120 exceeds 5 * 3, every number is within 100 of the median 60
        kept = drop_outlier_numbers(_episodes(1, 60, 121))
        assert [ep.number for ep in kept] == [1, 60, 121]

    def test_single_episode(self):
        assert [ep.number for ep in drop_outlier_numbers(_episodes(2019))] == [2019]
