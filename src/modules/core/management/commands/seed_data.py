from __future__ import annotations

import random
import uuid
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from modules.inventory.ledger import InventoryLedger
from modules.inventory.models import InventoryItem
from modules.inventory.views import build_ledger
from modules.orders.constants import OrderStatus
from modules.orders.dtos import PlaceOrderDTO, PlaceOrderItemDTO
from modules.orders.exceptions import InsufficientStock, NoRetailerInRange
from modules.orders.models import Order
from modules.orders.services import OrderService
from modules.orders.views import build_order_service
from modules.products.models import Product, ProductStatus
from modules.retailers.models import Retailer

SEED_ACTOR = "seed"

# Shops around central Bengaluru; the delivery points below fall inside
# at least one service radius.
RETAILERS = [
    ("Asha Rao", "Asha Kirana Store", "+919800000001", 12.9716, 77.5946, 5.0),
    ("Vikram Shetty", "Shetty Provisions", "+919800000002", 12.9352, 77.6245, 8.0),
    ("Meera Iyer", "Iyer Daily Needs", "+919800000003", 13.0358, 77.5970, 6.0),
    ("Rahul Menon", "Menon Mart", "+919800000004", 12.9121, 77.6446, 10.0),
    ("Priya Nair", "Nair Fresh", "+919800000005", 12.9980, 77.6690, 4.0),
]

CATALOG = [
    ("GRC-001", "Basmati Rice 5kg", "bag", Decimal("649.00")),
    ("GRC-002", "Toor Dal 1kg", "pack", Decimal("179.00")),
    ("GRC-003", "Sunflower Oil 1L", "bottle", Decimal("165.00")),
    ("GRC-004", "Wheat Atta 10kg", "bag", Decimal("499.00")),
    ("GRC-005", "Sugar 1kg", "pack", Decimal("48.00")),
    ("DRY-001", "Milk 500ml", "pouch", Decimal("27.00")),
    ("DRY-002", "Paneer 200g", "pack", Decimal("95.00")),
    ("DRY-003", "Curd 400g", "cup", Decimal("40.00")),
    ("HSH-001", "Detergent 1kg", "pack", Decimal("210.00")),
    ("HSH-002", "Dish Soap 500ml", "bottle", Decimal("99.00")),
]

DELIVERY_POINTS = [
    (12.9750, 77.6000, "MG Road"),
    (12.9300, 77.6200, "Koramangala"),
    (13.0300, 77.5900, "Hebbal"),
    (12.9150, 77.6400, "HSR Layout"),
    (12.9950, 77.6650, "Indiranagar"),
]


class Command(BaseCommand):
    help = "Seed database with realistic development data."

    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Seeding development data...")

        users_created = self._seed_users()
        retailers = self._seed_retailers()
        products = self._seed_products()
        ledger = build_ledger()
        stock_rows = self._seed_inventory(ledger, retailers, products)
        orders_created = self._seed_orders(build_order_service(), products)

        self.stdout.write(
            self.style.SUCCESS(
                "Seed completed: "
                f"users={users_created}, "
                f"retailers={len(retailers)}, "
                f"products={len(products)}, "
                f"inventory_items={stock_rows}, "
                f"orders={orders_created}"
            )
        )

    def _seed_users(self) -> int:
        User = get_user_model()
        created = 0
        if not User.objects.filter(username="admin").exists():
            User.objects.create_superuser("admin", password="admin123")
            created += 1
        if not User.objects.filter(username="manager").exists():
            User.objects.create_user(
                "manager", password="manager123", is_staff=True
            )
            created += 1
        if not User.objects.filter(username="user").exists():
            User.objects.create_user("user", password="user123")
            created += 1
        return created

    def _seed_retailers(self) -> list[Retailer]:
        self.stdout.write("Creating retailers...")
        retailers: list[Retailer] = []
        for name, shop, phone, lat, lng, radius in RETAILERS:
            retailer, _ = Retailer.objects.get_or_create(
                shop_name=shop,
                defaults={
                    "name": name,
                    "contact_number": phone,
                    "latitude": lat,
                    "longitude": lng,
                    "service_radius_km": radius,
                },
            )
            retailers.append(retailer)
        self.stdout.write(self.style.SUCCESS("Creating retailers... Done!"))
        return retailers

    def _seed_products(self) -> list[Product]:
        self.stdout.write("Creating products...")
        products: list[Product] = []
        for sku, name, unit, price in CATALOG:
            product, _ = Product.objects.get_or_create(
                sku=sku,
                defaults={
                    "name": name,
                    "unit": unit,
                    "price": price,
                    "status": ProductStatus.ACTIVE,
                },
            )
            products.append(product)
        self.stdout.write(self.style.SUCCESS("Creating products... Done!"))
        return products

    def _seed_inventory(
        self,
        ledger: InventoryLedger,
        retailers: list[Retailer],
        products: list[Product],
    ) -> int:
        self.stdout.write("Stocking retailers...")
        rows = 0
        for retailer in retailers:
            for product in products:
                if InventoryItem.objects.filter(retailer=retailer, product=product).exists():
                    continue
                ledger.stock_in(
                    retailer_id=retailer.id,
                    product_id=product.id,
                    quantity=random.randint(5, 60),
                    actor=SEED_ACTOR,
                    notes="Initial stock",
                )
                rows += 1
        self.stdout.write(self.style.SUCCESS("Stocking retailers... Done!"))
        return rows

    def _seed_orders(self, service: OrderService, products: list[Product]) -> int:
        self.stdout.write("Placing orders...")
        if Order.objects.exists():
            self.stdout.write(self.style.WARNING("Skipping orders (orders already exist)."))
            return 0

        customers = [uuid.uuid4() for _ in range(8)]
        next_steps = [
            [],
            [OrderStatus.CONFIRMED],
            [OrderStatus.CONFIRMED, OrderStatus.PREPARING],
            [
                OrderStatus.CONFIRMED,
                OrderStatus.PREPARING,
                OrderStatus.OUT_FOR_DELIVERY,
                OrderStatus.DELIVERED,
            ],
            [OrderStatus.CANCELLED],
        ]

        placed = 0
        for i in range(25):
            latitude, longitude, area = random.choice(DELIVERY_POINTS)
            picked = random.sample(products, k=random.randint(1, 3))
            dto = PlaceOrderDTO(
                customer_id=random.choice(customers),
                items=[
                    PlaceOrderItemDTO(product_id=p.id, quantity=random.randint(1, 3))
                    for p in picked
                ],
                delivery_latitude=latitude,
                delivery_longitude=longitude,
                delivery_address=area,
                notes=f"Seed order {i + 1}",
                idempotency_key=f"seed-{i + 1}",
                actor=SEED_ACTOR,
            )
            try:
                order = service.place_order(dto)
            except (InsufficientStock, NoRetailerInRange) as exc:
                self.stdout.write(self.style.WARNING(f"Skipped seed order {i + 1}: {exc}"))
                continue

            for step in random.choice(next_steps):
                order = service.update_status(order.id, step, actor=SEED_ACTOR)
            placed += 1

        self.stdout.write(self.style.SUCCESS("Placing orders... Done!"))
        return placed
