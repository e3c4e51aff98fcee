"""
LinkedIn DOM selectors for job search cards, job detail pages and modals.
LinkedIn changes its markup often; keep every selector here.
"""

# Search results page
JOB_CARD = ".base-card, .base-search-card, .job-search-card"
JOB_TITLE = ".base-search-card__title, .base-card__full-link"
COMPANY_NAME = ".base-search-card__subtitle, .hidden-nested-link"
JOB_LINK = ".base-card__full-link"
DATE_POSTED = "time, .job-search-card__listdate"
FALLBACK_JOB_ANCHOR = "a[href*='jobs']"
SEE_MORE_BUTTON = "button[aria-label='See more jobs'], button.infinite-scroller__show-more-button"

# Containers probed when no card renders
RESULT_CONTAINERS = [
    ".jobs-search-results-list",
    ".scaffold-layout__list",
    ".jobs-search-results__list",
    "ul.jobs-search__results-list",
    "[class*='job']",
]

# Job detail page
DETAIL_PAGE = "[data-view-name='job-detail-page']"

# Login/signup modals shown on public pages
MODAL_DISMISS = (
    ".modal__dismiss, "
    "[data-tracking-control-name='public_jobs_apply-link-offsite_sign-up-modal_dismiss'], "
    "button[aria-label='Dismiss']"
)
