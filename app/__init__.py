"""AnimeHub web application: public site, JSON APIs and admin back office."""
