import uvicorn


def main() -> None:
    uvicorn.run("levelup_api.app:create_app", factory=True)


if __name__ == "__main__":
    main()
