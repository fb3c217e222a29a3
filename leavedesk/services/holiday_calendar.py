from datetime import date
from typing import Optional, Set

from sqlalchemy import or_

from leavedesk.models.holiday import Holiday
from leavedesk.services.base import BaseService


class HolidayCalendar(BaseService):
    def holiday_dates(self, company_id: Optional[int], start: date, end: date) -> Set[date]:
        """
        Active holidays in [start, end] that are global or belong to the company.
        Yearly-recurring holidays match on month and day in every year of the range.
        """
        if end < start:
            return set()

        company_filter = Holiday.company_id.is_(None)
        if company_id is not None:
            company_filter = or_(Holiday.company_id.is_(None), Holiday.company_id == company_id)

        base = self.db.query(Holiday).filter(Holiday.is_active == True, company_filter)

        dates = {
            h.date for h in base.filter(
                Holiday.is_recurring_yearly == False,
                Holiday.date >= start,
                Holiday.date <= end,
            ).all()
        }

        for holiday in base.filter(Holiday.is_recurring_yearly == True).all():
            for year in range(start.year, end.year + 1):
                try:
                    occurrence = holiday.date.replace(year=year)
                except ValueError:
                    # Feb 29 in a non-leap year
                    continue
                if start <= occurrence <= end:
                    dates.add(occurrence)

        return dates
