from dynaconf import Dynaconf, Validator

settings = Dynaconf(
    settings_files=["settings.toml", ".secrets.toml"],
    environments=True,
    env_switcher="ENV_FOR_DYNACONF",
    envvar_prefix="MICROBLOG",
    load_dotenv=True,
    validators=[
        Validator("DOMAIN", must_exist=True),
        Validator("DATABASE_URL", must_exist=True),
        Validator("FOLLOWERS_PAGE_SIZE", default=20, is_type_of=int, gt=0),
        Validator("SOFTWARE_NAME", default="microblog"),
        Validator("SOFTWARE_VERSION", default="0.1.0"),
    ],
)
