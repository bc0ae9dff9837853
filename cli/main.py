"""Performance & Capacity Engine CLI - Command line interface."""

import argparse
import sys

import httpx

from common.utils import format_currency, format_duration, load_yaml


def get_client(base_url: str = "http://localhost:8000") -> httpx.Client:
    """Get HTTP client for API calls."""
    return httpx.Client(base_url=base_url, timeout=30.0)


def check(response: httpx.Response) -> dict:
    """Return the JSON body, exiting with the API's error detail on failure."""
    if response.is_error:
        try:
            detail = response.json().get("detail", response.text)
        except ValueError:
            detail = response.text
        print(f"Error ({response.status_code}): {detail}")
        sys.exit(1)
    return response.json()


def cmd_status(args):
    """Show system status."""
    with get_client(args.url) as client:
        try:
            health = check(client.get("/api/v1/system/health"))
            print(f"System Status: {health.get('status', 'unknown').upper()}")
            for name, state in health.get('components', {}).items():
                print(f"  {name:<10} {state}")

            monitor = check(client.get("/api/v1/monitor/status"))
            state = "running" if monitor.get('running') else "stopped"
            print(f"Monitor: {state}, {monitor.get('samples', 0)} samples, {monitor.get('rules', 0)} rules")

            runs = check(client.get("/api/v1/runs/?limit=5"))
            running = [r for r in runs.get('runs', []) if r.get('status') == 'running']
            if running:
                print("\nActive Runs:")
                for r in running:
                    print(f"  - {r.get('name')} ({r.get('id')})")

        except httpx.ConnectError:
            print(f"Error: Cannot connect to engine at {args.url}")
            sys.exit(1)


def cmd_runs(args):
    """List scalability runs."""
    with get_client(args.url) as client:
        runs = check(client.get(f"/api/v1/runs/?limit={args.limit}"))

        if not runs.get('runs'):
            print("No runs found")
            return

        print(f"{'ID':<30} {'Name':<22} {'Status':<10} {'Stop reason':<18} {'Max users':<10}")
        print("-" * 92)
        for r in runs.get('runs', []):
            max_users = r.get('max_users')
            print(
                f"{r.get('id', ''):<30} {r.get('name', ''):<22} {r.get('status', ''):<10} "
                f"{r.get('stop_reason') or '-':<18} {max_users if max_users is not None else '-':<10}"
            )


def cmd_run(args):
    """Start a new scalability run."""
    config = load_yaml(args.config) if args.config else {}

    overrides = {
        "name": args.name,
        "target_url": args.target,
        "baseline_users": args.baseline,
        "max_users": args.max_users,
        "user_increment": args.increment,
        "test_duration": args.duration,
    }
    config.update({k: v for k, v in overrides.items() if v is not None})

    with get_client(args.url) as client:
        print(f"Starting scalability run against {config.get('target_url', 'default target')}")
        result = check(client.post("/api/v1/runs/", json=config))

        print(f"Run started: {result.get('run_id')}")
        print(f"Levels: {', '.join(str(level) for level in result.get('levels', []))}")
        print(f"Status: {result.get('status')}")


def cmd_show(args):
    """Show a run's breaking point and recommendations."""
    with get_client(args.url) as client:
        run = check(client.get(f"/api/v1/runs/{args.id}"))

        print(f"Run: {run.get('id')} ({run.get('config', {}).get('name')})")
        print(f"Status: {run.get('status')}  Stop reason: {run.get('stop_reason') or '-'}")
        if run.get('error'):
            print(f"Error: {run.get('error')}")

        results = run.get('results', [])
        if results:
            print(f"\n{'Users':<8} {'Avg ms':<10} {'P95 ms':<10} {'RPS':<10} {'Errors':<8}")
            print("-" * 50)
            for r in results:
                print(
                    f"{r.get('concurrent_users', 0):<8} {r.get('average_response_time', 0):<10.1f} "
                    f"{r.get('p95_response_time', 0):<10.1f} {r.get('throughput', 0):<10.1f} "
                    f"{r.get('error_rate', 0):<8.1%}"
                )

        bp = run.get('breaking_point')
        if bp:
            print(f"\nMax throughput: {bp.get('max_throughput', 0):.1f} rps at {bp.get('max_users')} users")
            print(f"Degradation point: {bp.get('degradation_point')} users")
            if bp.get('breaking_users') is not None:
                print(f"Breaking point: {bp.get('breaking_users')} users")

        if run.get('recommendations'):
            print("\nRecommendations:")
            for rec in run.get('recommendations', []):
                print(f"  [{rec.get('priority', '').upper()}] {rec.get('title')}: {rec.get('description')}")


def cmd_stop(args):
    """Stop a run."""
    with get_client(args.url) as client:
        result = check(client.post(f"/api/v1/runs/{args.id}/stop"))
        print(result.get('message', 'Stop signal sent'))


def cmd_rules(args):
    """List alert rules."""
    with get_client(args.url) as client:
        rules = check(client.get("/api/v1/monitor/rules"))

        if not rules.get('rules'):
            print("No alert rules registered")
            return

        print(f"{'ID':<20} {'Condition':<30} {'Severity':<10} {'State':<10} {'Fired':<6}")
        print("-" * 80)
        for r in rules.get('rules', []):
            condition = f"{r.get('metric')} {r.get('operator')} {r.get('threshold')}"
            state = r.get('state') or {}
            status = "FIRING" if state.get('triggered') else ("ok" if r.get('enabled') else "disabled")
            print(
                f"{r.get('id', ''):<20} {condition:<30} {r.get('severity', ''):<10} "
                f"{status:<10} {state.get('trigger_count', 0):<6}"
            )


def cmd_add_rule(args):
    """Register an alert rule from a YAML file or flags."""
    rule = load_yaml(args.file) if args.file else {}
    overrides = {
        "id": args.id,
        "name": args.name,
        "metric": args.metric,
        "threshold": args.threshold,
        "operator": args.operator,
        "severity": args.severity,
    }
    rule.update({k: v for k, v in overrides.items() if v is not None})

    with get_client(args.url) as client:
        result = check(client.post("/api/v1/monitor/rules", json=rule))
        print(f"Rule added: {result.get('rule_id')} ({result.get('condition')})")


def cmd_remove_rule(args):
    with get_client(args.url) as client:
        result = check(client.delete(f"/api/v1/monitor/rules/{args.id}"))
        print(result.get('message', 'Rule removed'))


def cmd_metrics(args):
    """Show recent monitor samples."""
    with get_client(args.url) as client:
        metrics = check(client.get(f"/api/v1/monitor/metrics?count={args.count}&compact=true"))

        if not metrics.get('metrics'):
            print("No samples collected")
            return

        print(f"{'Timestamp':<28} {'RT ms':<9} {'RPS':<9} {'Err':<8} {'CPU %':<7} {'Mem %':<7}")
        print("-" * 72)
        for m in metrics.get('metrics', []):
            print(
                f"{m.get('ts', ''):<28} {m.get('rt_ms', 0):<9} {m.get('rps', 0):<9} "
                f"{m.get('err', 0):<8} {m.get('cpu', 0):<7} {m.get('mem', 0):<7}"
            )


def cmd_report(args):
    """Show a performance report for the last hours."""
    with get_client(args.url) as client:
        report = check(client.get(f"/api/v1/monitor/report?hours={args.hours}"))
        summary = report.get('summary', {})

        print(f"Report: {report.get('id')} ({report.get('sample_count', 0)} samples)")
        print(f"Window: {format_duration(int(args.hours * 3600))}")
        print(f"  Average response time: {summary.get('average_response_time', 0):.1f} ms")
        print(f"  P95 response time:     {summary.get('p95_response_time', 0):.1f} ms")
        print(f"  Total requests:        {summary.get('total_requests', 0):,}")
        print(f"  Availability:          {summary.get('availability', 0):.2%}")
        print(f"  Performance score:     {summary.get('performance_score', 0):.0f}/100")

        print("\nTrends:")
        for t in report.get('trends', []):
            trend = t.get('trend', {})
            print(f"  {t.get('metric'):<15} {trend.get('direction'):<11} {t.get('change_percentage', 0):+.1f}%")

        alerts = report.get('alerts', [])
        if alerts:
            print(f"\nAlerts ({len(alerts)}):")
            for a in alerts:
                print(f"  {a.get('timestamp')} {a.get('kind'):<9} {a.get('rule_name')} = {a.get('value')}")


def cmd_plan(args):
    """Generate a capacity plan."""
    with get_client(args.url) as client:
        data = {"timeframe": args.timeframe, "growth_rate": args.growth}
        plan = check(client.post("/api/v1/capacity/plans", json=data))
        costs = plan.get('cost_analysis', {})

        print(f"Capacity plan: {plan.get('id')} ({plan.get('timeframe')}, {plan.get('growth_rate', 0):.0%} growth)")
        print(f"\n{'Category':<16} {'Current':>12} {'Projected':>12} {'Optimized':>12}")
        print("-" * 56)
        for item in costs.get('cost_breakdown', []):
            print(
                f"{item.get('category', ''):<16} {format_currency(item.get('current', 0)):>12} "
                f"{format_currency(item.get('projected', 0)):>12} {format_currency(item.get('optimized', 0)):>12}"
            )
        print("-" * 56)
        print(
            f"{'Total':<16} {format_currency(costs.get('current_monthly_cost', 0)):>12} "
            f"{format_currency(costs.get('projected_monthly_cost', 0)):>12} "
            f"{format_currency(costs.get('optimized_monthly_cost', 0)):>12}"
        )

        if plan.get('recommendations'):
            print("\nRecommendations:")
            for rec in plan.get('recommendations', []):
                print(
                    f"  {rec.get('action')} {rec.get('resource')}: {rec.get('current_value'):g} -> "
                    f"{rec.get('recommended_value'):g} ({rec.get('timeline')}, "
                    f"+{format_currency(rec.get('cost', 0))}/month)"
                )


def cmd_optimize(args):
    """Optimize resource allocation from metric history."""
    with get_client(args.url) as client:
        constraints = {"allow_downscaling": not args.no_downscaling}
        if args.max_cost_increase is not None:
            constraints["max_cost_increase"] = args.max_cost_increase
        result = check(client.post("/api/v1/capacity/optimize", json=constraints))

        if not result.get('optimizations'):
            print("No optimizations recommended")
            return

        for opt in result.get('optimizations', []):
            print(
                f"  {opt.get('resource'):<10} {opt.get('current_allocation'):g} -> "
                f"{opt.get('recommended_allocation'):g}  savings {format_currency(opt.get('expected_savings', 0))}"
                f"  risk {opt.get('risk_level')}"
            )
        print(f"\nTotal monthly savings: {format_currency(result.get('total_savings', 0))}")

        print("\nImplementation plan:")
        for step in result.get('implementation_plan', []):
            print(f"  {step.get('step')}. {step.get('description')} ({step.get('estimated_duration')})")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Performance & Capacity Engine CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-u", "--url",
        default="http://localhost:8000",
        help="Engine URL (default: http://localhost:8000)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # status
    status_parser = subparsers.add_parser("status", help="Show system status")
    status_parser.set_defaults(func=cmd_status)

    # runs
    runs_parser = subparsers.add_parser("runs", help="List scalability runs")
    runs_parser.add_argument("-l", "--limit", type=int, default=20, help="Limit results")
    runs_parser.set_defaults(func=cmd_runs)

    # run
    run_parser = subparsers.add_parser("run", help="Start a scalability run")
    run_parser.add_argument("-c", "--config", help="Run config YAML file")
    run_parser.add_argument("-n", "--name", help="Run name")
    run_parser.add_argument("-t", "--target", help="Target URL")
    run_parser.add_argument("--baseline", type=int, help="Baseline users")
    run_parser.add_argument("--max-users", type=int, help="Maximum users")
    run_parser.add_argument("--increment", type=int, help="Users added per step")
    run_parser.add_argument("--duration", type=int, help="Seconds per step")
    run_parser.set_defaults(func=cmd_run)

    # show
    show_parser = subparsers.add_parser("show", help="Show run results")
    show_parser.add_argument("id", help="Run ID")
    show_parser.set_defaults(func=cmd_show)

    # stop
    stop_parser = subparsers.add_parser("stop", help="Stop a run")
    stop_parser.add_argument("id", help="Run ID")
    stop_parser.set_defaults(func=cmd_stop)

    # rules
    rules_parser = subparsers.add_parser("rules", help="List alert rules")
    rules_parser.set_defaults(func=cmd_rules)

    # add-rule
    add_rule_parser = subparsers.add_parser("add-rule", help="Add an alert rule")
    add_rule_parser.add_argument("-f", "--file", help="Rule YAML file")
    add_rule_parser.add_argument("--id", help="Rule ID")
    add_rule_parser.add_argument("--name", help="Rule name")
    add_rule_parser.add_argument("--metric", help="Metric field, e.g. error_rate")
    add_rule_parser.add_argument("--threshold", type=float, help="Threshold value")
    add_rule_parser.add_argument("--operator", choices=[">", ">=", "<", "<=", "==", "!="])
    add_rule_parser.add_argument("--severity", choices=["info", "warning", "error", "critical"])
    add_rule_parser.set_defaults(func=cmd_add_rule)

    # remove-rule
    remove_rule_parser = subparsers.add_parser("remove-rule", help="Remove an alert rule")
    remove_rule_parser.add_argument("id", help="Rule ID")
    remove_rule_parser.set_defaults(func=cmd_remove_rule)

    # metrics
    metrics_parser = subparsers.add_parser("metrics", help="Show recent samples")
    metrics_parser.add_argument("-n", "--count", type=int, default=20, help="Number of samples")
    metrics_parser.set_defaults(func=cmd_metrics)

    # report
    report_parser = subparsers.add_parser("report", help="Performance report")
    report_parser.add_argument("--hours", type=float, default=1.0, help="Window in hours")
    report_parser.set_defaults(func=cmd_report)

    # plan
    plan_parser = subparsers.add_parser("plan", help="Generate a capacity plan")
    plan_parser.add_argument("-t", "--timeframe", default="3 months", help="Planning timeframe")
    plan_parser.add_argument("-g", "--growth", type=float, default=0.2, help="Growth rate (0.2 = 20%%)")
    plan_parser.set_defaults(func=cmd_plan)

    # optimize
    optimize_parser = subparsers.add_parser("optimize", help="Optimize resource allocation")
    optimize_parser.add_argument("--max-cost-increase", type=float, help="Largest accepted monthly increase")
    optimize_parser.add_argument("--no-downscaling", action="store_true", help="Only allow scale-ups")
    optimize_parser.set_defaults(func=cmd_optimize)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
