import asyncio

from derivable import (
    CollectionAttribute,
    IdAttribute,
    Model,
    NumberAttribute,
    StringAttribute,
)


# A cart line derives its own total from price and quantity
class CartLine(Model):
    name = StringAttribute
    price = NumberAttribute
    quantity = NumberAttribute.declare(default=1)
    total = NumberAttribute.declare(
        derive=lambda attr: attr.model.get("price") * attr.model.get("quantity")
    )


# The cart sums its lines; editing any line recalculates the cart
class Cart(Model):
    id = IdAttribute
    lines = CollectionAttribute.of(CartLine)
    total = NumberAttribute.declare(
        derive=lambda attr: sum(line.get("total") for line in attr.model.get("lines"))
    )


def update_ui(cart: Cart):
    print(f">>> Cart Total: ${cart.get('total'):.2f}")


async def main():
    cart = Cart({"lines": [{"name": "socks", "price": 10.0}]})
    cart.on("change:total", update_ui)
    await cart.ready()
    cart.commit()

    print("=" * 50)

    # Several edits in the same step settle as one recalculation
    lines = cart.get("lines")
    lines.at(0).set("quantity", 2)
    lines.add({"name": "hat", "price": 15.0})
    await cart.ready()

    print("changed since commit:", cart.is_changed())

    # Throw the edits away
    cart.revert()
    await cart.ready()
    print("after revert:", cart.to_json())


asyncio.run(main())

# >>> Cart Total: $10.00
# ==================================================
# >>> Cart Total: $35.00
# changed since commit: True
# >>> Cart Total: $10.00
# after revert: {'id': None, 'lines': [{'name': 'socks', 'price': 10.0, 'quantity': 1, 'total': 10.0}], 'total': 10.0}
