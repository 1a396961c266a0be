"""Website crawler: robots check, page fetchers and the bounded site crawl."""
