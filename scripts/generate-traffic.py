#!/usr/bin/env python3
"""
Traffic generator for the storefront service
Simulates shoppers browsing the catalog, filling carts, checking out and
paying with an uploaded transfer slip
"""

import requests
import random
import time
import threading
import uuid
from datetime import datetime

API_URL = "http://localhost:8000"

CREDENTIALS = [
    {"username": "customer", "password": "customer123"},
    {"username": "shopper", "password": "shopper123"},
]

# Delivery points around the default store area (Bangkok)
DELIVERY_POINTS = [
    {"address": "12 Sukhumvit Soi 11, Bangkok", "lat": 13.7437, "lng": 100.5560},
    {"address": "88 Rama IV Road, Bangkok", "lat": 13.7246, "lng": 100.5436},
    {"address": "5 Phahon Yothin Road, Bangkok", "lat": 13.8146, "lng": 100.5607},
    {"address": "Village 3, Nakhon Pathom", "lat": 13.8199, "lng": 100.0621},
]

# Weight for actions
ACTION_WEIGHTS = {
    "browse": 0.4,
    "add_to_cart": 0.3,
    "checkout": 0.15,
    "view_cart": 0.1,
    "view_orders": 0.05,
}

# Smallest valid PNG, used as the payment slip
SLIP_BYTES = bytes.fromhex(
    "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
    "1f15c4890000000d49444154789c6360000002000154a24f5d0000000049454e44ae426082"
)


def get_headers(token):
    return {"Authorization": f"Bearer {token}"}


def log(message):
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    print(f"[{timestamp}] {message}")


class Shopper:
    def __init__(self, session_id):
        self.session_id = session_id
        self.token = None
        self.products = []
        self.categories = []

    def authenticate(self):
        """Log in with one of the demo accounts."""
        cred = dict(random.choice(CREDENTIALS))

        # Simulate authentication failures (~2%)
        if random.random() < 0.02:
            cred["password"] = "wrong_password"

        try:
            response = requests.post(f"{API_URL}/auth/login", json=cred, timeout=5)
            if response.status_code == 200:
                self.token = response.json()["token"]
                log(f"Shopper {self.session_id}: Logged in as {cred['username']}")
                return True
            log(f"Shopper {self.session_id}: Login failed - {response.status_code}")
        except requests.RequestException as e:
            log(f"Shopper {self.session_id}: Login error - {e}")
        return False

    def fetch_products(self):
        try:
            if not self.categories:
                response = requests.get(f"{API_URL}/products/categories", timeout=5)
                if response.status_code == 200:
                    self.categories = response.json()["categories"]

            params = {}
            if self.categories and random.random() < 0.3:
                params["category"] = random.choice(self.categories)
            response = requests.get(f"{API_URL}/products", params=params, timeout=5)
            if response.status_code == 200:
                self.products = response.json()
                log(f"Shopper {self.session_id}: Fetched {len(self.products)} products")
                return True
        except requests.RequestException as e:
            log(f"Shopper {self.session_id}: Failed to fetch products - {e}")
        return False

    def browse_products(self):
        if not self.products:
            self.fetch_products()

        if self.products:
            product = random.choice(self.products)
            try:
                response = requests.get(f"{API_URL}/products/{product['id']}", timeout=5)
                if response.status_code == 200:
                    log(f"Shopper {self.session_id}: Browsing {product['name']}")
                    return True
            except requests.RequestException as e:
                log(f"Shopper {self.session_id}: Failed to browse product - {e}")
        return False

    def add_to_cart(self):
        if not self.products:
            self.fetch_products()

        if self.products:
            product = random.choice(self.products)
            try:
                response = requests.post(
                    f"{API_URL}/cart/add",
                    json={"product_id": product["id"], "quantity": random.randint(1, 3)},
                    headers=get_headers(self.token),
                    timeout=5
                )
                if response.status_code == 200:
                    log(f"Shopper {self.session_id}: Added {product['name']} to cart")
                    return True
                log(f"Shopper {self.session_id}: Failed to add to cart - {response.status_code}")
            except requests.RequestException as e:
                log(f"Shopper {self.session_id}: Failed to add to cart - {e}")
        return False

    def view_cart(self):
        try:
            response = requests.get(f"{API_URL}/cart", headers=get_headers(self.token), timeout=5)
            if response.status_code == 200:
                cart_data = response.json()
                log(f"Shopper {self.session_id}: Viewing cart with {len(cart_data.get('items', []))} items")
                return True
        except requests.RequestException as e:
            log(f"Shopper {self.session_id}: Failed to view cart - {e}")
        return False

    def checkout(self):
        """Check out with pickup or delivery, then pay most orders."""
        if random.random() < 0.3:
            body = {"shipping_method": "pickup"}
        else:
            point = random.choice(DELIVERY_POINTS)
            body = {
                "shipping_method": "delivery",
                "shipping_address": point["address"],
                "lat": point["lat"],
                "lng": point["lng"],
            }

        try:
            response = requests.post(
                f"{API_URL}/orders/checkout",
                json=body,
                headers=get_headers(self.token),
                timeout=10
            )
            if response.status_code != 200:
                log(f"Shopper {self.session_id}: Checkout failed - {response.status_code} {response.text}")
                return False
            order = response.json()
            log(
                f"Shopper {self.session_id}: Order {order['order_number']} placed "
                f"({body['shipping_method']}, {order['grand_total']:.2f} THB)"
            )
        except requests.RequestException as e:
            log(f"Shopper {self.session_id}: Checkout failed - {e}")
            return False

        # ~20% of orders are left unpaid
        if random.random() < 0.8:
            self.upload_slip(order["order_id"])
        return True

    def upload_slip(self, order_id):
        trans_ref = f"TX{uuid.uuid4().hex[:12].upper()}"
        try:
            response = requests.post(
                f"{API_URL}/orders/{order_id}/payment-slip",
                files={"file": ("slip.png", SLIP_BYTES, "image/png")},
                data={"trans_ref": trans_ref},
                headers=get_headers(self.token),
                timeout=35
            )
            if response.status_code == 200:
                log(f"Shopper {self.session_id}: Payment verified ({trans_ref})")
                return True
            log(f"Shopper {self.session_id}: Payment failed - {response.status_code}")
        except requests.RequestException as e:
            log(f"Shopper {self.session_id}: Payment failed - {e}")
        return False

    def view_orders(self):
        try:
            response = requests.get(f"{API_URL}/orders", headers=get_headers(self.token), timeout=5)
            if response.status_code == 200:
                orders_data = response.json()
                log(f"Shopper {self.session_id}: Viewing {len(orders_data.get('orders', []))} orders")
                return True
        except requests.RequestException as e:
            log(f"Shopper {self.session_id}: Failed to view orders - {e}")
        return False

    def random_action(self):
        action = random.choices(
            list(ACTION_WEIGHTS.keys()),
            weights=list(ACTION_WEIGHTS.values())
        )[0]

        if action == "browse":
            return self.browse_products()
        elif action == "add_to_cart":
            return self.add_to_cart()
        elif action == "checkout":
            return self.checkout()
        elif action == "view_cart":
            return self.view_cart()
        elif action == "view_orders":
            return self.view_orders()


def shopper_session(session_id, duration_seconds, shopper_type="browser"):
    """
    Simulate a shopper session

    shopper_type:
    - "browser": Just browses products (50%)
    - "cart_abandoner": Adds to cart but doesn't checkout (30%)
    - "buyer": Completes purchase and pays (20%)
    """
    shopper = Shopper(session_id)
    end_time = time.time() + duration_seconds

    shopper.fetch_products()
    for _ in range(random.randint(2, 5)):
        shopper.browse_products()
        time.sleep(random.uniform(0.5, 1.5))

    if shopper_type == "browser":
        log(f"Shopper {session_id}: Browser - viewing products only")
        while time.time() < end_time:
            shopper.browse_products()
            time.sleep(random.uniform(0.3, 0.8))
        return

    if not shopper.authenticate():
        return
    time.sleep(random.uniform(0.2, 0.5))

    for _ in range(random.randint(1, 3)):
        shopper.add_to_cart()
        time.sleep(random.uniform(0.3, 0.8))

    if shopper_type == "cart_abandoner":
        log(f"Shopper {session_id}: Cart abandoner - adding to cart but not checking out")
        while time.time() < end_time:
            if random.random() < 0.5:
                shopper.browse_products()
            else:
                shopper.view_cart()
            time.sleep(random.uniform(0.3, 0.8))

    elif shopper_type == "buyer":
        log(f"Shopper {session_id}: Buyer - will complete checkout")
        shopper.checkout()
        while time.time() < end_time:
            shopper.random_action()
            time.sleep(random.uniform(0.5, 1.5))


def generate_traffic(num_concurrent_users=5, session_duration=60):
    """Generate traffic with multiple concurrent shoppers"""
    log(f"Starting traffic generation with {num_concurrent_users} concurrent shoppers")
    log(f"Session duration: {session_duration} seconds")
    log("Shopper mix: 50% browsers, 30% cart abandoners, 20% buyers")

    threads = []

    try:
        while True:
            while len([t for t in threads if t.is_alive()]) < num_concurrent_users:
                session_id = f"s{random.randint(1000, 9999)}"

                rand = random.random()
                if rand < 0.50:
                    shopper_type = "browser"
                elif rand < 0.80:
                    shopper_type = "cart_abandoner"
                else:
                    shopper_type = "buyer"

                thread = threading.Thread(
                    target=shopper_session,
                    args=(session_id, session_duration, shopper_type)
                )
                thread.start()
                threads.append(thread)

                time.sleep(random.uniform(1, 3))

            threads = [t for t in threads if t.is_alive()]
            time.sleep(5)

    except KeyboardInterrupt:
        log("\nStopping traffic generation...")
        log("Waiting for active sessions to complete...")
        for thread in threads:
            thread.join(timeout=10)
        log("Traffic generation stopped")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Generate traffic for the storefront service")
    parser.add_argument(
        "--users",
        type=int,
        default=5,
        help="Number of concurrent shoppers (default: 5)"
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=60,
        help="Session duration in seconds (default: 60)"
    )
    parser.add_argument(
        "--url",
        type=str,
        default="http://localhost:8000",
        help="API URL (default: http://localhost:8000)"
    )

    args = parser.parse_args()
    API_URL = args.url

    log("=" * 60)
    log("Storefront Traffic Generator")
    log("=" * 60)
    log(f"API URL: {API_URL}")
    log(f"Concurrent Shoppers: {args.users}")
    log(f"Session Duration: {args.duration}s")
    log("=" * 60)

    generate_traffic(args.users, args.duration)
