import django_filters

from modules.discounts.constants import DiscountType
from modules.discounts.models import DiscountCode


class DiscountCodeFilter(django_filters.FilterSet):
    discount_type = django_filters.ChoiceFilter(choices=DiscountType.choices)
    is_active = django_filters.BooleanFilter()
    code = django_filters.CharFilter(lookup_expr="icontains")

    class Meta:
        model = DiscountCode
        fields = ["discount_type", "is_active", "code"]
