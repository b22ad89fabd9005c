"""
Simple simulator: walk one lot through the audit pipeline of a running API.
Run:
    python scripts/simulate_lot.py [API_URL]
"""
import random
import sys
import time

import requests

API = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"

def show(step, rr):
    body = rr.json()
    audit = body.get("audit", {})
    print(f"{step}: {rr.status_code} stage={body.get('stage')} "
          f"audit={audit.get('kind')} reason={audit.get('reason')!r}")

def main():
    print("Thresholds:", requests.get(f"{API}/api/thresholds").json())

    lot_id = f"PALTA-SIM-{int(time.time())}"
    initial = float(random.randint(900, 1200))
    rr = requests.post(f"{API}/api/lots", json={
        "lot_id": lot_id,
        "variety": "Hass",
        "initial_weight": initial,
        "registered_by": "simulator",
    })
    show("register", rr)

    temp = random.randint(600, 880)  # °C x100
    show("transport", requests.post(f"{API}/api/lots/{lot_id}/transport",
                                    json={"avg_transport_temp_c": temp}))

    units = [{"status": random.choice(["OK", "OK", "OK", "ALERTA", "DESCARTE", "??"])} for _ in range(40)]
    show("inspections", requests.post(f"{API}/api/lots/{lot_id}/inspections",
                                      json={"units": units, "source": "simulator"}))

    final = round(initial * random.uniform(0.92, 1.0), 1)
    show("reception", requests.post(f"{API}/api/lots/{lot_id}/reception",
                                    json={"final_weight_received": final}))

    show("packaging", requests.post(f"{API}/api/lots/{lot_id}/packaging",
                                    json={"final_dry_matter_pct": round(random.uniform(19, 26), 1)}))

    rr = requests.post(f"{API}/api/lots/{lot_id}/transfer",
                       json={"new_owner": "exporter", "amount_usd": round(final * 2.4, 2)})
    print("transfer:", rr.status_code, rr.text)

    print("History:", requests.get(f"{API}/api/history/summary").json())

if __name__ == "__main__":
    main()
