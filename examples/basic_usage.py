"""
Example: Basic Service Layer usage with sap_b1sl
================================================

This example shows how to log in, page through a list query and handle
the tagged results of the normalized verbs.
"""

import asyncio
import logging

from sap_b1sl import ServiceLayer, build_query, escape_odata_literal


async def example_basic_query():
    """Log in with explicit settings and read items."""

    sl = ServiceLayer()
    await sl.create_session({
        "host": "https://your-b1-server.example.com/",
        "port": 50000,
        "company": "SBODEMOUS",
        "username": "manager",
        "password": "PASSWORD",
        "debug": True,
    })

    name = escape_odata_literal("O'Neil Toner")
    query = build_query(
        "Items",
        fields=["ItemCode", "ItemName", "QuantityOnStock"],
        filter_expr=f"ItemName eq '{name}'",
        orderby="ItemCode",
    )
    items = await sl.find(query, {"headers": {"Prefer": "odata.maxpagesize=100"}})
    print(f"Found {len(items)} items")
    print("First 2:", items[:2])

    await sl.close()


async def example_from_env():
    """Using environment variables: B1_HOST, B1_PORT, B1_COMPANY, B1_USER, B1_PASS."""

    async with ServiceLayer.from_env() as sl:
        await sl.create_session()

        result = await sl.get("Orders(10)")
        if result.error:
            print("Order lookup failed:", result.to_dict())
        else:
            print("Order total:", result.value.get("DocTotal"))

        update = await sl.patch("BusinessPartners('C20000')", {"Notes": "Preferred"})
        print("Update:", "failed" if update.error else "ok")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    # Uncomment the example you want to run
    # asyncio.run(example_basic_query())
    # asyncio.run(example_from_env())

    print("Set up your environment variables and uncomment an example to run.")
    print("Required: B1_HOST, B1_PORT, B1_COMPANY, B1_USER, B1_PASS")
