"""
BeautifulSoup parser for parkrun results pages.
"""

from __future__ import annotations

import logging
import re

from bs4 import BeautifulSoup, Tag

from parkrun_notifier.domain import EventRef, FinisherResult
from parkrun_notifier.errors import MalformedPageError

logger = logging.getLogger(__name__)

RESULTS_TABLE_SELECTOR = "table.Results-table"
RESULT_ROW_SELECTOR = "tbody tr"
RUN_DATE_SELECTOR = "div.Results-header span.format-date"
POSITION_CELL_SELECTOR = 'td[class*="--position"]'
NAME_CELL_SELECTOR = 'td[class*="--name"] div.compact'
FINISHER_LINK_SELECTOR = 'td[class*="--name"] div.compact a[href]'
TIME_CELL_SELECTOR = 'td[class*="--time"] div.compact'


class ResultParser:
    """
    Extracts finisher rows and the run date from one results page.
    """

    def parse(
        self,
        markup: str,
        event_id: str,
        display_name: str,
        run_number: int,
    ) -> list[FinisherResult]:
        """
        Return one FinisherResult per row carrying a finisher permalink.

        A page without the results table (an unpublished run) or a table without
        data rows yields an empty list. Rows without a run date are malformed.
        """

        soup = BeautifulSoup(markup, "html.parser")
        table = soup.select_one(RESULTS_TABLE_SELECTOR)
        if table is None:
            logger.debug("No results table on page event=%s run=%s", event_id, run_number)
            return []

        rows = table.select(RESULT_ROW_SELECTOR)
        if not rows:
            return []

        run_date = self._run_date(soup)
        if not run_date:
            raise MalformedPageError(
                f"No run date header on page event={event_id} run={run_number}"
            )

        event = EventRef(
            event_id=event_id,
            name=display_name,
            date=run_date,
            run_number=run_number,
        )
        results: list[FinisherResult] = []
        for row in rows:
            finisher_id = self._finisher_id(row)
            if finisher_id is None:
                continue
            results.append(
                FinisherResult(
                    finisher_id=finisher_id,
                    position=self._cell_text(row, POSITION_CELL_SELECTOR),
                    name=self._cell_text(row, NAME_CELL_SELECTOR),
                    time=self._cell_text(row, TIME_CELL_SELECTOR),
                    event=event,
                )
            )
        return results

    @classmethod
    def _run_date(cls, soup: BeautifulSoup) -> str:
        node = soup.select_one(RUN_DATE_SELECTOR)
        if node is None:
            return ""
        return cls._clean_text(node.get_text(" ", strip=True))

    @staticmethod
    def _finisher_id(row: Tag) -> str | None:
        link = row.select_one(FINISHER_LINK_SELECTOR)
        if link is None:
            return None
        href = str(link.get("href") or "")
        segments = [segment for segment in href.split("?", 1)[0].split("/") if segment]
        if not segments:
            return None
        return segments[-1]

    @classmethod
    def _cell_text(cls, row: Tag, selector: str) -> str:
        node = row.select_one(selector)
        if node is None:
            return ""
        return cls._clean_text(node.get_text(" ", strip=True))

    @staticmethod
    def _clean_text(value: str) -> str:
        return re.sub(r"\s+", " ", value).strip()
