#!/usr/bin/env python3
"""
API Endpoint Testing Script

Smoke test of the FUN FARM Rewards endpoints after deployment.

Usage:
    python scripts/test_endpoints.py
    python scripts/test_endpoints.py --base-url http://your-server:8000 --api-key KEY
    python scripts/test_endpoints.py --user-id <profile id> --verbose
"""
import argparse
import sys

import requests


class Colors:
    """ANSI color codes for terminal output"""
    GREEN = '\033[92m'
    RED = '\033[91m'
    YELLOW = '\033[93m'
    BLUE = '\033[94m'
    RESET = '\033[0m'


def log_success(msg):
    print(f"{Colors.GREEN}✓{Colors.RESET} {msg}")


def log_error(msg):
    print(f"{Colors.RED}✗{Colors.RESET} {msg}")


def log_info(msg):
    print(f"{Colors.BLUE}→{Colors.RESET} {msg}")


class APITester:
    def __init__(self, base_url: str, api_key: str, user_id: str, verbose: bool = False):
        self.base_url = base_url.rstrip('/')
        self.headers = {"X-API-Key": api_key}
        self.user_id = user_id
        self.verbose = verbose
        self.results = {"passed": 0, "failed": 0}

    def request(self, method: str, endpoint: str, **kwargs):
        """Make HTTP request and return response"""
        url = f"{self.base_url}{endpoint}"
        try:
            response = requests.request(method, url, timeout=60, headers=self.headers, **kwargs)
        except requests.RequestException as e:
            if self.verbose:
                print(f"    Request error: {e}")
            return None
        if self.verbose:
            print(f"    Response [{response.status_code}]: {response.text[:200]}...")
        return response

    def test_endpoint(self, name: str, method: str, endpoint: str, expected_status=200, **kwargs):
        """Test a single endpoint"""
        if self.verbose:
            log_info(f"Testing: {method.upper()} {endpoint}")

        response = self.request(method, endpoint, **kwargs)

        if response is None:
            log_error(f"{name}: Connection failed")
            self.results["failed"] += 1
            return None

        if isinstance(expected_status, (list, tuple)):
            status_ok = response.status_code in expected_status
        else:
            status_ok = response.status_code == expected_status

        if status_ok:
            log_success(f"{name} [{response.status_code}]")
            self.results["passed"] += 1
        else:
            log_error(f"{name} - Expected {expected_status}, got {response.status_code}")
            if self.verbose:
                print(f"    Response: {response.text[:500]}")
            self.results["failed"] += 1
        return response

    def run_tests(self):
        """Run all endpoint tests"""
        uid = self.user_id
        print("\n" + "=" * 60)
        print("FUN FARM Rewards Endpoint Tests")
        print("=" * 60)
        print(f"Base URL: {self.base_url}")
        print(f"User: {uid}")

        print("\n--- Health & Root ---")
        self.test_endpoint("Root endpoint", "GET", "/")
        self.test_endpoint("Health check", "GET", "/health")

        print("\n--- Rewards ---")
        self.test_endpoint("Daily rewards", "GET", f"/rewards/{uid}/daily", expected_status=[200, 404])
        self.test_endpoint("Daily rewards, bad range", "GET", f"/rewards/{uid}/daily",
            expected_status=[404, 422],
            params={"start_date": "2025-02-01", "end_date": "2025-01-01"})
        self.test_endpoint("Lifetime reward", "GET", f"/rewards/{uid}/lifetime", expected_status=[200, 404])
        self.test_endpoint("Unknown bonus kind", "POST", f"/rewards/{uid}/bonuses/daily",
            expected_status=422)

        print("\n--- Abuse ---")
        self.test_endpoint("Abuse report", "GET", "/abuse/report")
        self.test_endpoint("User suspicion", "GET", f"/abuse/users/{uid}", expected_status=[200, 404])

        print("\n--- Reconciliation ---")
        self.test_endpoint("Reconcile user", "GET", f"/reconciliation/{uid}", expected_status=[200, 404])
        run = self.test_endpoint("Start reconciliation run", "POST", "/reconciliation/runs",
            json={"user_ids": [uid]})
        if run is not None and run.status_code == 200:
            task_id = run.json().get("task_id")
            self.test_endpoint("Reconciliation run status", "GET", f"/reconciliation/runs/{task_id}")
            self.test_endpoint("Cancel reconciliation run", "DELETE", f"/reconciliation/runs/{task_id}")

        print("\n--- Exports ---")
        self.test_endpoint("Suspicious users CSV", "GET", "/exports/suspicious.csv")
        self.test_endpoint("Daily rewards CSV", "GET", f"/exports/{uid}/daily.csv", expected_status=[200, 404])

        print("\n" + "=" * 60)
        print("TEST SUMMARY")
        print("=" * 60)
        print(f"  {Colors.GREEN}Passed: {self.results['passed']}{Colors.RESET}")
        print(f"  {Colors.RED}Failed: {self.results['failed']}{Colors.RESET}")
        total = self.results['passed'] + self.results['failed']
        if total > 0:
            pct = (self.results['passed'] / total) * 100
            print(f"  Success Rate: {pct:.1f}%")
        print()

        return self.results['failed'] == 0


def main():
    parser = argparse.ArgumentParser(description="Test FUN FARM Rewards endpoints")
    parser.add_argument("--base-url", default="http://localhost:8000",
                       help="API base URL (default: http://localhost:8000)")
    parser.add_argument("--api-key", default="internal-api-key", help="Admin API key")
    parser.add_argument("--user-id", default="seed-user-0001", help="Profile id to query")
    parser.add_argument("--verbose", "-v", action="store_true",
                       help="Show detailed output")

    args = parser.parse_args()

    tester = APITester(args.base_url, args.api_key, args.user_id, verbose=args.verbose)
    success = tester.run_tests()

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
