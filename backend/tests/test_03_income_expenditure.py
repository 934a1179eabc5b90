"""
Tests 35-50, 116-117: Income & Expenditure Records

Verify that recording income or expenditure posts the matching journal
entry, that edits and deletions are corrected through reversals, and that
the record listings and aggregations agree with the ledger.
"""
import uuid

# Tests auto-detected by pytest-asyncio (asyncio_mode=auto in pyproject.toml)


async def _record_income(client, headers, accounts, classifications, amount, day="2026-03-05", **extra):
    return await client.post("/api/incomes", headers=headers, json={
        "revenue_source_id": classifications["source"]["id"],
        "asset_account_id": accounts["1000"]["id"],
        "amount": amount,
        "date": day,
        **extra,
    })


async def _record_expenditure(client, headers, accounts, classifications, amount, day="2026-03-06"):
    return await client.post("/api/expenditures", headers=headers, json={
        "votehead_id": classifications["votehead"]["id"],
        "asset_account_id": accounts["1100"]["id"],
        "amount": amount,
        "date": day,
        "description": "March power bill",
    })


async def _march_statement(client, headers):
    r = await client.get(
        "/api/accounting/income-expenditure?start_date=2026-03-01&end_date=2026-03-31",
        headers=headers,
    )
    assert r.status_code == 200
    return r.json()


class TestClassifications:

    # ===================================================================
    # Test 35: Revenue source must bind a revenue account
    # ===================================================================
    async def test_35_revenue_source_needs_revenue_account(self, client, admin_headers, accounts):
        r = await client.post("/api/revenue-sources", headers=admin_headers, json={
            "name": "Misbound", "account_id": accounts["5000"]["id"],
        })
        assert r.status_code == 422

    # ===================================================================
    # Test 36: Votehead must bind an expense account
    # ===================================================================
    async def test_36_votehead_needs_expense_account(self, client, admin_headers, accounts):
        r = await client.post("/api/voteheads", headers=admin_headers, json={
            "name": "Misbound", "account_id": accounts["4000"]["id"],
        })
        assert r.status_code == 422

    # ===================================================================
    # Test 37: Names are unique per church
    # ===================================================================
    async def test_37_duplicate_name_conflict(self, client, admin_headers, accounts, classifications):
        r = await client.post("/api/revenue-sources", headers=admin_headers, json={
            "name": "Sunday Tithes", "account_id": accounts["4100"]["id"],
        })
        assert r.status_code == 409

    # ===================================================================
    # Test 38: Categories CRUD
    # ===================================================================
    async def test_38_categories_crud(self, client, admin_headers):
        r = await client.post("/api/categories", headers=admin_headers, json={"name": "Missions"})
        assert r.status_code == 201
        category_id = r.json()["id"]

        r = await client.put(f"/api/categories/{category_id}", headers=admin_headers, json={
            "name": "Missions & Outreach", "description": "Local and foreign missions",
        })
        assert r.status_code == 200
        assert r.json()["name"] == "Missions & Outreach"

        items = (await client.get("/api/categories", headers=admin_headers)).json()["items"]
        assert [c["name"] for c in items] == ["Missions & Outreach"]

        r = await client.delete(f"/api/categories/{category_id}", headers=admin_headers)
        assert r.status_code == 200
        assert (await client.get("/api/categories", headers=admin_headers)).json()["total"] == 0

    # ===================================================================
    # Test 39: Rebinding a revenue source to another revenue account
    # ===================================================================
    async def test_39_update_revenue_source(self, client, admin_headers, accounts, classifications):
        source_id = classifications["source"]["id"]
        r = await client.put(f"/api/revenue-sources/{source_id}", headers=admin_headers, json={
            "account_id": accounts["4100"]["id"],
        })
        assert r.status_code == 200
        assert r.json()["account_code"] == "4100"
        assert r.json()["name"] == "Sunday Tithes"


class TestIncomeExpenditure:

    # ===================================================================
    # Test 40: Recording income posts Dr asset / Cr revenue
    # ===================================================================
    async def test_40_income_posts_entry(self, client, admin_headers, accounts, classifications):
        r = await _record_income(client, admin_headers, accounts, classifications, 250, description="Sunday service")
        assert r.status_code == 201, r.text
        income = r.json()
        assert income["revenue_source_name"] == "Sunday Tithes"
        assert income["year"] == 2026
        assert income["journal_entry_id"] is not None

        je = (await client.get(f"/api/journal-entries/{income['journal_entry_id']}", headers=admin_headers)).json()
        assert je["status"] == "posted"
        assert je["source"] == "income"
        assert je["source_reference"] == income["id"]
        lines = {l["account_code"]: l for l in je["lines"]}
        assert lines["1000"]["debit"] == 250.0
        assert lines["4000"]["credit"] == 250.0

    # ===================================================================
    # Test 41: Recording expenditure posts Dr expense / Cr asset
    # ===================================================================
    async def test_41_expenditure_posts_entry(self, client, admin_headers, accounts, classifications):
        await _record_income(client, admin_headers, accounts, classifications, 250)
        r = await _record_expenditure(client, admin_headers, accounts, classifications, 100)
        assert r.status_code == 201, r.text
        assert r.json()["votehead_name"] == "Electricity"

        statement = await _march_statement(client, admin_headers)
        assert statement["total_revenue"] == 250.0
        assert statement["total_expenses"] == 100.0
        assert statement["net_income"] == 150.0

        bank = (await client.get(f"/api/accounts/{accounts['1100']['id']}", headers=admin_headers)).json()
        assert bank["balance"] == -100.0

    # ===================================================================
    # Test 42: Receiving account must be an asset
    # ===================================================================
    async def test_42_non_asset_account_rejected(self, client, admin_headers, accounts, classifications):
        r = await client.post("/api/incomes", headers=admin_headers, json={
            "revenue_source_id": classifications["source"]["id"],
            "asset_account_id": accounts["2000"]["id"],
            "amount": 50,
            "date": "2026-03-05",
        })
        assert r.status_code == 422

    # ===================================================================
    # Test 43: Amount must be positive
    # ===================================================================
    async def test_43_zero_amount_rejected(self, client, admin_headers, accounts, classifications):
        r = await _record_income(client, admin_headers, accounts, classifications, 0)
        assert r.status_code == 422

    # ===================================================================
    # Test 44: Editing income reverses and reposts
    # ===================================================================
    async def test_44_update_income_reverses_and_reposts(self, client, admin_headers, accounts, classifications):
        income = (await _record_income(client, admin_headers, accounts, classifications, 250)).json()
        old_je_id = income["journal_entry_id"]

        r = await client.put(f"/api/incomes/{income['id']}", headers=admin_headers, json={
            "revenue_source_id": classifications["source"]["id"],
            "asset_account_id": accounts["1000"]["id"],
            "amount": 300,
            "date": "2026-03-05",
        })
        assert r.status_code == 200, r.text
        updated = r.json()
        assert updated["amount"] == 300.0
        assert updated["journal_entry_id"] != old_je_id

        old_je = (await client.get(f"/api/journal-entries/{old_je_id}", headers=admin_headers)).json()
        assert old_je["status"] == "reversed"
        reversal = (await client.get(
            f"/api/journal-entries/{old_je['reversed_by_je_id']}", headers=admin_headers,
        )).json()
        assert reversal["entry_date"] == "2026-03-05"

        statement = await _march_statement(client, admin_headers)
        assert statement["total_revenue"] == 300.0

        r = await client.get("/api/journal-entries?source=income", headers=admin_headers)
        assert r.json()["total"] == 2

    # ===================================================================
    # Test 45: Deleting expenditure reverses its entry
    # ===================================================================
    async def test_45_delete_expenditure_reverses(self, client, admin_headers, accounts, classifications):
        exp = (await _record_expenditure(client, admin_headers, accounts, classifications, 100)).json()

        r = await client.delete(f"/api/expenditures/{exp['id']}", headers=admin_headers)
        assert r.status_code == 200
        r = await client.get(f"/api/expenditures/{exp['id']}", headers=admin_headers)
        assert r.status_code == 404

        je = (await client.get(f"/api/journal-entries/{exp['journal_entry_id']}", headers=admin_headers)).json()
        assert je["status"] == "reversed"
        statement = await _march_statement(client, admin_headers)
        assert statement["total_expenses"] == 0.0

    # ===================================================================
    # Test 46: Entry reversed from the journal is not reversed again
    # ===================================================================
    async def test_46_delete_after_manual_reversal(self, client, admin_headers, accounts, classifications):
        income = (await _record_income(client, admin_headers, accounts, classifications, 80)).json()
        r = await client.post(
            f"/api/journal-entries/{income['journal_entry_id']}/reverse", headers=admin_headers,
        )
        assert r.status_code == 200

        r = await client.delete(f"/api/incomes/{income['id']}", headers=admin_headers)
        assert r.status_code == 200
        r = await client.get("/api/journal-entries?source=reversal", headers=admin_headers)
        assert r.json()["total"] == 1

    # ===================================================================
    # Test 47: Record listing by type
    # ===================================================================
    async def test_47_record_listing(self, client, admin_headers, accounts, classifications):
        await _record_income(client, admin_headers, accounts, classifications, 250)
        await _record_income(client, admin_headers, accounts, classifications, 150, day="2026-04-02")
        await _record_expenditure(client, admin_headers, accounts, classifications, 100)

        r = await client.get("/api/reports?type=income", headers=admin_headers)
        assert r.status_code == 200
        body = r.json()
        assert body["total"] == 2
        assert body["total_amount"] == 400.0
        assert {i["name"] for i in body["items"]} == {"Sunday Tithes"}

        r = await client.get(
            "/api/reports?type=income&start_date=2026-04-01&end_date=2026-04-30", headers=admin_headers,
        )
        assert r.json()["total"] == 1

        r = await client.get("/api/reports?type=expenditure", headers=admin_headers)
        assert r.json()["items"][0]["name"] == "Electricity"

        r = await client.get("/api/reports?type=pledges", headers=admin_headers)
        assert r.status_code == 422

    # ===================================================================
    # Test 48: Aggregation per revenue source for a month and a year
    # ===================================================================
    async def test_48_aggregation(self, client, admin_headers, accounts, classifications):
        await _record_income(client, admin_headers, accounts, classifications, 250)
        await _record_income(client, admin_headers, accounts, classifications, 150, day="2026-03-20")
        await _record_income(client, admin_headers, accounts, classifications, 75, day="2026-04-02")

        r = await client.get("/api/reports/aggregated?type=income&year=2026&month=3", headers=admin_headers)
        assert r.status_code == 200
        body = r.json()
        assert body["items"] == [{"name": "Sunday Tithes", "total_amount": 400.0, "count": 2}]
        assert body["grand_total"] == 400.0

        r = await client.get("/api/reports/aggregated?type=income&year=2026", headers=admin_headers)
        assert r.json()["grand_total"] == 475.0

        r = await client.get("/api/incomes?year=2026&month=4", headers=admin_headers)
        assert r.json()["total"] == 1
        assert r.json()["total_amount"] == 75.0

    # ===================================================================
    # Test 49: Revenue source in use cannot be deleted
    # ===================================================================
    async def test_49_delete_used_source_conflict(self, client, admin_headers, accounts, classifications):
        await _record_income(client, admin_headers, accounts, classifications, 250)
        r = await client.delete(
            f"/api/revenue-sources/{classifications['source']['id']}", headers=admin_headers,
        )
        assert r.status_code == 409

        r = await client.delete(f"/api/voteheads/{classifications['votehead']['id']}", headers=admin_headers)
        assert r.status_code == 200

    # ===================================================================
    # Test 50: Unknown record is 404
    # ===================================================================
    async def test_50_unknown_record_404(self, client, admin_headers):
        r = await client.get(f"/api/incomes/{uuid.uuid4()}", headers=admin_headers)
        assert r.status_code == 404

    # ===================================================================
    # Test 116: Amounts beyond the column size are rejected
    # ===================================================================
    async def test_116_oversized_amount_rejected(self, client, admin_headers, accounts, classifications):
        r = await _record_income(client, admin_headers, accounts, classifications, "1e30")
        assert r.status_code == 422
        r = await _record_expenditure(client, admin_headers, accounts, classifications, "1234567890123.45")
        assert r.status_code == 422
        r = await _record_income(client, admin_headers, accounts, classifications, "10.005")
        assert r.status_code == 422

        r = await client.get("/api/journal-entries", headers=admin_headers)
        assert r.json()["total"] == 0

    # ===================================================================
    # Test 117: Aggregation without a year covers every record
    # ===================================================================
    async def test_117_aggregation_all_time(self, client, admin_headers, accounts, classifications):
        await _record_income(client, admin_headers, accounts, classifications, 250)
        await _record_income(client, admin_headers, accounts, classifications, 75, day="2025-12-28")

        r = await client.get("/api/reports/aggregated?type=income", headers=admin_headers)
        assert r.status_code == 200
        body = r.json()
        assert body["year"] is None
        assert body["items"] == [{"name": "Sunday Tithes", "total_amount": 325.0, "count": 2}]

        r = await client.get("/api/reports/aggregated?type=income&month=3", headers=admin_headers)
        assert r.status_code == 422
