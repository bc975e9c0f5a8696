import django_filters
from django.db.models import F

from modules.products.models import Product


class ProductFilter(django_filters.FilterSet):
    """Catalog filters mirroring the storefront filter panel."""

    categories = django_filters.CharFilter(method="filter_categories")
    min_price = django_filters.NumberFilter(field_name="price", lookup_expr="gte")
    max_price = django_filters.NumberFilter(field_name="price", lookup_expr="lte")
    color = django_filters.CharFilter(field_name="color", lookup_expr="iexact")
    size = django_filters.CharFilter(field_name="size", lookup_expr="iexact")
    in_stock_only = django_filters.BooleanFilter(method="filter_in_stock")
    on_sale_only = django_filters.BooleanFilter(method="filter_on_sale")
    featured = django_filters.BooleanFilter(field_name="featured")

    class Meta:
        model = Product
        fields = [
            "categories",
            "min_price",
            "max_price",
            "color",
            "size",
            "in_stock_only",
            "on_sale_only",
            "featured",
        ]

    def filter_categories(self, queryset, name, value):
        wanted = [c.strip() for c in value.split(",") if c.strip()]
        return queryset.filter(category__in=wanted) if wanted else queryset

    def filter_in_stock(self, queryset, name, value):
        if not value:
            return queryset
        return queryset.filter(stock_quantity__gt=F("reserved_quantity"))

    def filter_on_sale(self, queryset, name, value):
        if not value:
            return queryset
        return queryset.filter(sale_price__isnull=False, sale_price__lt=F("price"))
