from cafe.utils.money import apply_percent_discount, duration_hours, to_money

__all__ = ["apply_percent_discount", "duration_hours", "to_money"]
