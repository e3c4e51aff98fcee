"""
Data models for Job Watch
Defines structure for scraped postings, scraper state and agent status
"""

from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field

# Age sentinels for cards whose posting time could not be parsed.
# Authenticated sessions trust the server-side time window; anonymous ones fail closed.
UNTRUSTED_AGE = 0
VERY_OLD_AGE = 9999


class ScrapedPosting(BaseModel):
    """A single job card extracted from the search results list"""

    site_id: str
    title: str
    company: str
    link: str
    posted_date: str = ""
    minutes_ago: int = Field(default=VERY_OLD_AGE, ge=0)
    apply_link: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.title} at {self.company} ({self.minutes_ago}m ago)"


class SearchQuery(BaseModel):
    """Represents a job search query"""

    keyword: str
    location: str = ""
    geo_id: str = ""
    max_minutes_ago: int = 10

    def __str__(self) -> str:
        if self.location:
            return f"'{self.keyword}' in {self.location}"
        return f"'{self.keyword}'"


class ScraperState(BaseModel):
    """Durable scraper state shared between the agent and the control surface"""

    last_run_at: datetime = Field(default_factory=datetime.now)
    last_success_at: Optional[datetime] = None
    error_count: int = Field(default=0, ge=0)
    is_running: bool = False
    owner_pid: Optional[int] = None


class AgentStatus(BaseModel):
    """Liveness report returned by the agent manager"""

    running: bool
    pid: Optional[int] = None
    last_run_at: datetime
    last_success_at: Optional[datetime] = None
    error_count: int = 0
    is_running_cycle: bool = False
