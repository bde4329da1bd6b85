"""Static section catalogue: source lists and ranking policy per section.

섹션 정의는 시작 시 한 번 로드되는 불변 레코드다. 가중치/전략 오버라이드는
``Settings``를 통해서만 가능하다.
"""

from __future__ import annotations

from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, PositiveFloat, PositiveInt

RankingStrategy = Literal["composite", "hot"]


class SectionError(Exception):
    """Base error for section lookups reported to API clients."""


class UnknownSectionError(SectionError, ValueError):
    """Requested section is not part of the catalogue."""

    def __init__(self, section: str) -> None:
        super().__init__(f"Unknown section: {section}")
        self.section = section


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class NewsApiQuery(_Frozen):
    endpoint: Literal["top-headlines", "everything"] = "top-headlines"
    category: Optional[str] = None
    country: Optional[str] = None
    keyword_groups: Tuple[Tuple[str, ...], ...] = Field(
        (), description="AND로 결합되는 OR 그룹 목록"
    )
    domains: Tuple[str, ...] = ()
    exclude_domains: Tuple[str, ...] = ()
    language: Optional[str] = None
    window_hours: Optional[PositiveInt] = None
    max_pages: PositiveInt = 1


class NaverQuery(_Frozen):
    query: str
    display: PositiveInt = 20


class XQuery(_Frozen):
    query: str
    max_results: PositiveInt = 50


class RedditEndpoint(_Frozen):
    path: str = "/r/all/new"
    limit: PositiveInt = 100


class YouTubeRegion(_Frozen):
    region_code: str = "US"
    max_results: PositiveInt = 30


class FeedSpec(_Frozen):
    url: str
    name: str
    trust: Optional[float] = 0.8
    max_items: PositiveInt = Field(10, le=30)


class SectionConfig(_Frozen):
    name: str
    preferred_locale: Optional[str] = None
    strategy: RankingStrategy = "composite"
    ttl_scale: PositiveFloat = Field(1.0, description="변동성이 큰 섹션일수록 작게")
    news_api: Tuple[NewsApiQuery, ...] = ()
    naver: Tuple[NaverQuery, ...] = ()
    x: Tuple[XQuery, ...] = ()
    reddit: Tuple[RedditEndpoint, ...] = ()
    youtube: Tuple[YouTubeRegion, ...] = ()
    rss: Tuple[FeedSpec, ...] = ()


YOUTUBE_CHANNEL_WHITELIST = frozenset(
    {
        "UC_4xOZ8s_fFlWmJ7GJ8d6LQ",  # Yonhap
        "UCEgdi0XIXXZ-qJOFPf4JSKw",  # CNN
        "UCWJ2lWNubArHWmf3FIHbfcQ",  # The Verge
        "UC16niRr50-MSBwiO3YDb3RA",  # BBC News
        "UCrp_UI8XtuYfpiqluWLD7Lw",  # Bloomberg
        "UCuTAXTexrhetbOe3zgskJBQ",  # ANN
    }
)

DEFAULT_ACCEPTABLE_LOCALES: Tuple[str, ...] = ("ko", "ja", "en")


SECTIONS: Dict[str, SectionConfig] = {
    "buzz": SectionConfig(
        name="buzz",
        ttl_scale=0.5,
        x=(
            XQuery(query="(viral OR trending) lang:en -is:retweet"),
            XQuery(query="(바이럴 OR 화제) lang:ko -is:retweet"),
            XQuery(query="(celebrity OR meme) -is:retweet"),
        ),
        reddit=(
            RedditEndpoint(path="/r/popular/hot", limit=50),
            RedditEndpoint(path="/r/all/rising", limit=50),
        ),
        news_api=(NewsApiQuery(category="entertainment", country="us"),),
        youtube=(YouTubeRegion(region_code="US"), YouTubeRegion(region_code="KR")),
        rss=(
            FeedSpec(
                url="https://feeds.bbci.co.uk/news/entertainment_and_arts/rss.xml",
                name="BBC Entertainment",
            ),
        ),
    ),
    "world": SectionConfig(
        name="world",
        news_api=(
            NewsApiQuery(category="general", country="us"),
            NewsApiQuery(category="general", country="gb"),
            NewsApiQuery(
                endpoint="everything",
                keyword_groups=(("summit", "election", "war", "treaty"),),
                domains=("reuters.com", "bbc.co.uk", "aljazeera.com"),
                language="en",
                window_hours=12,
            ),
        ),
        reddit=(RedditEndpoint(path="/r/worldnews/new", limit=50),),
        youtube=(YouTubeRegion(region_code="GB"),),
        rss=(
            FeedSpec(url="https://feeds.bbci.co.uk/news/world/rss.xml", name="BBC"),
            FeedSpec(url="https://rss.cnn.com/rss/edition_world.rss", name="CNN"),
            FeedSpec(url="https://www.aljazeera.com/xml/rss/all.xml", name="Al Jazeera"),
        ),
    ),
    "korea": SectionConfig(
        name="korea",
        preferred_locale="ko",
        naver=(NaverQuery(query="속보"), NaverQuery(query="뉴스"), NaverQuery(query="정치 경제")),
        x=(XQuery(query="(속보 OR 긴급) lang:ko -is:retweet"),),
        youtube=(YouTubeRegion(region_code="KR"),),
        rss=(
            FeedSpec(url="https://fs.jtbc.co.kr/RSS/newsflash.xml", name="JTBC"),
            FeedSpec(url="https://www.yna.co.kr/rss/news.xml", name="Yonhap"),
            FeedSpec(url="https://www.khan.co.kr/rss/rssdata/total_news.xml", name="Kyunghyang"),
        ),
    ),
    "japan": SectionConfig(
        name="japan",
        preferred_locale="ja",
        strategy="hot",
        news_api=(NewsApiQuery(category="general", country="jp"),),
        youtube=(YouTubeRegion(region_code="JP"),),
        rss=(
            FeedSpec(url="https://www3.nhk.or.jp/rss/news/cat0.xml", name="NHK", trust=1.0),
            FeedSpec(url="https://www.asahi.com/rss/asahi/newsheadlines.rdf", name="Asahi"),
        ),
    ),
    "business": SectionConfig(
        name="business",
        ttl_scale=1.5,
        news_api=(
            NewsApiQuery(category="business", country="us"),
            NewsApiQuery(
                endpoint="everything",
                keyword_groups=(("earnings", "merger", "acquisition", "ipo"),),
                domains=("bloomberg.com", "ft.com", "wsj.com", "cnbc.com"),
                exclude_domains=("reddit.com",),
                language="en",
                window_hours=24,
            ),
        ),
        reddit=(RedditEndpoint(path="/r/business/new", limit=50),),
        rss=(
            FeedSpec(url="https://feeds.bloomberg.com/markets/news.rss", name="Bloomberg Markets"),
            FeedSpec(url="https://feeds.a.dj.com/rss/RSSWSJD.xml", name="WSJ"),
            FeedSpec(url="https://www.cnbc.com/id/10001147/device/rss/rss.html", name="CNBC"),
        ),
    ),
    "tech": SectionConfig(
        name="tech",
        ttl_scale=1.5,
        news_api=(NewsApiQuery(category="technology", country="us"),),
        x=(XQuery(query="(AI OR startup OR chip) lang:en -is:retweet"),),
        reddit=(RedditEndpoint(path="/r/technology/new", limit=50),),
        youtube=(YouTubeRegion(region_code="US"),),
        rss=(
            FeedSpec(url="https://techcrunch.com/feed/", name="TechCrunch"),
            FeedSpec(url="https://feeds.arstechnica.com/arstechnica/index", name="Ars Technica"),
            FeedSpec(url="https://www.theverge.com/rss/index.xml", name="The Verge"),
            FeedSpec(url="https://9to5mac.com/feed/", name="9to5Mac"),
        ),
    ),
}

SECTION_ALIASES: Dict[str, str] = {"kr": "korea", "jp": "japan"}


def section_names() -> List[str]:
    return list(SECTIONS)


def resolve_section_name(name: str) -> str:
    key = (name or "").strip().lower()
    key = SECTION_ALIASES.get(key, key)
    if key not in SECTIONS:
        raise UnknownSectionError(name)
    return key


def get_section(name: str) -> SectionConfig:
    return SECTIONS[resolve_section_name(name)]
