"""Product aggregate with ProductVariant entity.

Only the parts of the catalogue the checkout reads are modelled here: the
base price and weight of a product and the per-variant overrides. Prices are
integer minor units (cents), weights are integer grams.
"""

from protean.fields import Boolean, HasMany, Integer, String

from storefront.domain import storefront


@storefront.entity(part_of="Product")
class ProductVariant:
    """A purchasable variation of a product.

    ``price`` and ``weight_grams`` are optional. When set they replace the
    product's value for lines that reference this variant, field by field.
    """

    sku = String(required=True, max_length=64)
    price = Integer(min_value=0)
    weight_grams = Integer(min_value=0)


@storefront.aggregate
class Product:
    name = String(required=True, max_length=255)
    price = Integer(required=True, min_value=0)
    weight_grams = Integer(min_value=0)
    is_active = Boolean(default=True)
    variants = HasMany(ProductVariant)

    def add_variant(self, sku, price=None, weight_grams=None):
        variant = ProductVariant(
            sku=sku,
            price=price,
            weight_grams=weight_grams,
        )
        self.add_variants(variant)
        return variant

    def find_variant(self, variant_id):
        """Return the variant with ``variant_id`` or None."""
        if variant_id is None:
            return None
        return next((v for v in self.variants if str(v.id) == str(variant_id)), None)

    def effective_price(self, variant=None):
        if variant is not None and variant.price is not None:
            return variant.price
        return self.price

    def effective_weight(self, variant=None):
        if variant is not None and variant.weight_grams is not None:
            return variant.weight_grams
        return self.weight_grams
