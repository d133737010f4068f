import subprocess


def start():
    cmd = ';'.join(
        [
            "echo Flake8:",
            'flake8 sentinel_entrypoint tests',
            "echo Mypy:",
            'mypy sentinel_entrypoint'
        ])
    subprocess.run(cmd, shell=True)


if __name__ == "__main__":
    start()
