import os, json, time, csv, math, queue, statistics, uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Dict
import requests


# ------------------ Config (no CLI needed) ------------------
BASE_URL = os.getenv("RIDECLOAK_URL", "http://localhost:8000")
PERF_REQUESTS = 200
MATRIX_REQUESTS_LIST = [100, 200, 400]
MATRIX_CONCURRENCY_LIST = [1, 5, 10, 20]
RACE_CONTENDERS = 10
PICKUP_LAT = 40.0
PICKUP_LON = 116.33

ROOT_OUTDIR = os.path.join(os.path.dirname(__file__), "results")

# ------------------ HTTP helpers ------------------
def jpost(path: str, payload=None) -> requests.Response:
    return requests.post(f"{BASE_URL}{path}", json=payload or {}, timeout=10)

def jget(path: str, params=None) -> requests.Response:
    return requests.get(f"{BASE_URL}{path}", params=params or {}, timeout=5)

def wait_for_server(attempts: int = 10) -> str:
    for _ in range(attempts):
        try:
            r = jget("/health")
            if r.status_code == 200:
                return r.json().get("node", "?")
        except requests.exceptions.RequestException:
            pass
        time.sleep(1)
    raise SystemExit(f"No server answering at {BASE_URL}. Start it with: uvicorn ridecloak.main:app")

def create_order(lat: float = PICKUP_LAT, lon: float = PICKUP_LON) -> str:
    order_id = f"eval-{uuid.uuid4().hex[:12]}"
    r = jpost("/api/order", {
        "orderId": order_id,
        "riderId": "rider-eval",
        "lat": lat, "lon": lon,
        "destination": [lat + 0.01, lon + 0.01],
    })
    r.raise_for_status()
    return order_id

# ------------------ Bench core ------------------
def order_cycle(drivers: "queue.Queue[str]"):
    t0 = time.perf_counter()
    try:
        order_id = create_order()
        ok = jpost("/api/match", {"orderId": order_id}).status_code == 200
    except requests.exceptions.RequestException:
        return False, (time.perf_counter() - t0) * 1000.0
    t1 = time.perf_counter()
    if ok:
        # a driver holds one order at a time; check one out for the whole trip
        driver_id = drivers.get()
        try:
            ok = jpost(f"/api/orders/{order_id}/accept", {"driverId": driver_id}).status_code == 200
            if ok:
                jpost(f"/api/orders/{order_id}/start")
                jpost(f"/api/orders/{order_id}/complete")
        finally:
            drivers.put(driver_id)
    return ok, (t1 - t0) * 1000.0

def run_performance_test(N: int, concurrency: int, driver_ids: List[str]) -> Dict:
    ok_count = 0
    latencies: List[float] = []
    drivers: "queue.Queue[str]" = queue.Queue()
    for driver_id in driver_ids:
        drivers.put(driver_id)

    start = time.time()
    with ThreadPoolExecutor(max_workers=concurrency) as ex:
        futures = [ex.submit(order_cycle, drivers) for _ in range(N)]
        for fut in as_completed(futures):
            ok, l = fut.result()
            if ok:
                ok_count += 1
            latencies.append(l)
    elapsed = time.time() - start

    throughput = ok_count / elapsed if elapsed > 0 else 0.0
    p50 = statistics.median(latencies) if latencies else math.nan
    p95 = sorted(latencies)[int(0.95 * len(latencies))] if latencies else math.nan

    return {
        "ok": ok_count,
        "total": N,
        "elapsed_s": round(elapsed, 3),
        "throughput_rps": round(throughput, 2),
        "p50_ms": round(p50, 2),
        "p95_ms": round(p95, 2),
        "concurrency": concurrency
    }

def run_accept_race(driver_ids: List[str], contenders: int = RACE_CONTENDERS) -> Dict:
    """Many drivers accept one order at once; exactly one must win."""
    order_id = create_order()
    contenders = driver_ids[:contenders]
    with ThreadPoolExecutor(max_workers=len(contenders)) as ex:
        results = list(ex.map(
            lambda d: (d, jpost(f"/api/orders/{order_id}/accept", {"driverId": d}).status_code),
            contenders,
        ))
    winners = [d for d, code in results if code == 200]
    losers = [d for d, code in results if code == 409]
    assigned = jget(f"/api/orders/{order_id}").json().get("driverId")
    consistent = len(winners) == 1 and assigned == winners[0] and len(losers) == len(contenders) - 1
    # free the winner for later runs
    jpost(f"/api/orders/{order_id}/start")
    jpost(f"/api/orders/{order_id}/complete")
    return {
        "order_id": order_id,
        "contenders": len(contenders),
        "winners": len(winners),
        "rejected": len(losers),
        "assigned": assigned,
        "consistent": consistent,
    }

# ------------------ CSV ------------------
def ensure_outdir(label: str) -> str:
    outdir = os.path.join(ROOT_OUTDIR, label)
    os.makedirs(outdir, exist_ok=True)
    return outdir

def write_csv(rows: List[Dict], path: str):
    if not rows: return
    with open(path, "w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=list(rows[0].keys()))
        w.writeheader()
        w.writerows(rows)

# ------------------ Main workflow ------------------
def main():
    print(f"Waiting for server at {BASE_URL}...")
    node = wait_for_server()
    outdir = ensure_outdir(node)
    driver_ids = [d["id"] for d in jget("/api/drivers").json()]
    if not driver_ids:
        raise SystemExit("Driver directory is empty.")
    print(f"Node {node}: {len(driver_ids)} drivers")

    # 1) Accept race
    print("Running concurrent accept race...")
    race = run_accept_race(driver_ids)
    print("Race:", json.dumps(race, indent=2))
    write_csv([race], os.path.join(outdir, "results_accept_race.csv"))

    # 2) Performance
    print("Running performance test...")
    perf = run_performance_test(PERF_REQUESTS, concurrency=1, driver_ids=driver_ids)
    perf.update({"node": node, "requests": PERF_REQUESTS, "drivers": len(driver_ids)})
    print("Performance:", json.dumps(perf, indent=2))
    write_csv([perf], os.path.join(outdir, "results_single.csv"))

    # 3) Scalability matrix
    rows = []
    for N in MATRIX_REQUESTS_LIST:
        for C in MATRIX_CONCURRENCY_LIST:
            print(f"Matrix run: N={N}, concurrency={C}")
            res = run_performance_test(N, C, driver_ids)
            res.update({"node": node, "requests": N, "drivers": len(driver_ids)})
            rows.append(res)
    matrix_csv = os.path.join(outdir, "results_matrix.csv")
    write_csv(rows, matrix_csv)

    print("== Summary ==")
    print(f"Accept race consistent: {race['consistent']} ({race['winners']} winner of {race['contenders']})")
    print(f"Performance: {perf['throughput_rps']} req/s, p50={perf['p50_ms']} ms, p95={perf['p95_ms']} ms")
    print(f"Matrix CSV: {matrix_csv}")

if __name__ == "__main__":
    main()
