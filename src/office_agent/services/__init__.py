"""Side-effecting services used by the agent tools."""

from .documents import DocumentError, PdfRenderer
from .mail_accounts import MailAccountError, MailAccountNotFoundError, MailAccountService
from .mailer import Mailer, text_to_html
from .scraper import ScrapeError, ScrapeJobService, WebScraper

__all__ = [
    "DocumentError",
    "MailAccountError",
    "MailAccountNotFoundError",
    "MailAccountService",
    "Mailer",
    "PdfRenderer",
    "ScrapeError",
    "ScrapeJobService",
    "WebScraper",
    "text_to_html",
]
