from fleet_balancer.index import run

if __name__ == "__main__":
    run()
