"""Static destination catalogs used to build decoy tasks."""

from dataclasses import dataclass, field


@dataclass
class SearchEngine:
    """A search engine with a ``{query}`` URL template."""
    id: str
    name: str
    url_template: str
    weight: float

    def url_for(self, escaped_query: str) -> str:
        return self.url_template.replace("{query}", escaped_query)


DEFAULT_SEARCH_ENGINES = [
    SearchEngine("google", "Google", "https://www.google.com/search?q={query}", 55),
    SearchEngine("duckduckgo", "DuckDuckGo", "https://duckduckgo.com/?q={query}", 20),
    SearchEngine("bing", "Bing", "https://www.bing.com/search?q={query}", 15),
    SearchEngine("yahoo", "Yahoo", "https://search.yahoo.com/search?p={query}", 10),
]

DEFAULT_SITES: dict[str, list[str]] = {
    "news": [
        "https://www.cnn.com", "https://www.bbc.com", "https://www.reuters.com",
        "https://www.npr.org", "https://apnews.com", "https://www.nytimes.com",
        "https://www.washingtonpost.com", "https://www.theguardian.com",
        "https://www.aljazeera.com", "https://www.usatoday.com",
        "https://www.politico.com", "https://www.axios.com",
    ],
    "tech": [
        "https://arstechnica.com", "https://www.theverge.com", "https://www.wired.com",
        "https://techcrunch.com", "https://news.ycombinator.com",
        "https://www.tomshardware.com", "https://www.engadget.com",
        "https://www.zdnet.com", "https://www.cnet.com", "https://slashdot.org",
    ],
    "shopping": [
        "https://www.amazon.com", "https://www.ebay.com", "https://www.walmart.com",
        "https://www.target.com", "https://www.etsy.com", "https://www.bestbuy.com",
        "https://www.wayfair.com", "https://www.homedepot.com", "https://www.ikea.com",
        "https://www.costco.com",
    ],
    "social": [
        "https://www.reddit.com", "https://www.youtube.com", "https://www.linkedin.com",
        "https://www.pinterest.com", "https://www.tumblr.com", "https://mastodon.social",
        "https://bsky.app",
    ],
    "forums": [
        "https://stackoverflow.com", "https://www.quora.com",
        "https://www.reddit.com/r/technology", "https://www.reddit.com/r/science",
        "https://www.reddit.com/r/explainlikeimfive", "https://www.reddit.com/r/cooking",
    ],
    "education": [
        "https://en.wikipedia.org/wiki/Special:Random", "https://www.khanacademy.org",
        "https://www.coursera.org", "https://ocw.mit.edu", "https://arxiv.org",
        "https://www.britannica.com",
    ],
    "entertainment": [
        "https://www.imdb.com", "https://www.rottentomatoes.com", "https://www.twitch.tv",
        "https://letterboxd.com", "https://www.metacritic.com", "https://www.ign.com",
        "https://store.steampowered.com", "https://www.goodreads.com",
    ],
    "health": [
        "https://www.webmd.com", "https://www.mayoclinic.org", "https://www.healthline.com",
        "https://medlineplus.gov", "https://www.nih.gov",
    ],
    "finance": [
        "https://finance.yahoo.com", "https://www.marketwatch.com",
        "https://www.investopedia.com", "https://www.cnbc.com", "https://www.nerdwallet.com",
    ],
    "travel": [
        "https://www.tripadvisor.com", "https://www.booking.com", "https://www.expedia.com",
        "https://www.lonelyplanet.com", "https://www.kayak.com",
    ],
    "food": [
        "https://www.allrecipes.com", "https://www.seriouseats.com",
        "https://www.bonappetit.com", "https://www.epicurious.com",
        "https://www.budgetbytes.com",
    ],
    "sports": [
        "https://www.espn.com", "https://bleacherreport.com", "https://www.cbssports.com",
        "https://www.si.com", "https://www.nba.com", "https://www.mlb.com",
    ],
}

DEFAULT_AD_SITES = [
    "https://weather.com", "https://www.allrecipes.com", "https://www.webmd.com",
    "https://www.dictionary.com", "https://www.speedtest.net", "https://www.accuweather.com",
    "https://www.thesaurus.com", "https://www.mapquest.com", "https://www.answers.com",
    "https://www.livestrong.com", "https://www.howstuffworks.com",
    "https://www.thespruce.com", "https://www.wikihow.com",
]

DEFAULT_SEARCH_TERMS = [
    "python tutorial for beginners", "how to use git branches",
    "docker compose tutorial", "linux command line basics",
    "best mechanical keyboard", "home lab setup ideas", "plex media server setup",
    "best running shoes for flat feet", "air fryer worth buying",
    "standing desk converter review", "best ergonomic office chair",
    "espresso machine under 500", "is walmart plus worth it",
    "latest world news today", "space exploration news",
    "housing market forecast", "electric vehicle adoption statistics",
    "best pizza dough recipe", "sourdough starter guide",
    "easy weeknight dinner ideas", "how to smoke a brisket",
    "beginner workout plan at home", "couch to 5k training plan",
    "best hiking trails near me", "how to fix a leaky faucet",
    "best indoor plants low light", "raised garden bed plans",
    "vitamin d deficiency symptoms", "how much sleep do adults need",
    "how to start investing for beginners", "roth ira vs traditional ira",
    "how compound interest works", "best movies on netflix right now",
    "board games for adults", "new book releases this month",
    "how does the stock market work", "history of the roman empire",
    "quantum computing explained simply", "how the internet works explained",
    "best electric cars", "how to change a tire step by step",
    "used car buying checklist", "best travel destinations",
    "japan travel itinerary 2 weeks", "how to avoid jet lag",
    "why is the sky blue", "how to tie a tie", "weather this weekend",
    "convert celsius to fahrenheit", "dog breeds for apartments",
]


@dataclass
class Catalog:
    """All destinations the engine may ever open."""
    search_engines: list[SearchEngine] = field(
        default_factory=lambda: list(DEFAULT_SEARCH_ENGINES)
    )
    sites: dict[str, list[str]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_SITES.items()}
    )
    ad_sites: list[str] = field(default_factory=lambda: list(DEFAULT_AD_SITES))
    search_terms: list[str] = field(default_factory=lambda: list(DEFAULT_SEARCH_TERMS))

    @property
    def categories(self) -> list[str]:
        return list(self.sites.keys())

    def all_sites(self) -> list[str]:
        """The unfiltered browse catalog, in category order."""
        sites = []
        for urls in self.sites.values():
            sites.extend(urls)
        return sites

    def sites_for(self, enabled: dict[str, bool]) -> list[str]:
        """Browse sites from enabled categories, or the full catalog if none are."""
        sites = []
        for category, urls in self.sites.items():
            if enabled.get(category):
                sites.extend(urls)
        return sites or self.all_sites()
